"""
Errors raised when building or evaluating decision processes.
"""


class RmdpError(Exception):
    """
    Base class for errors of this package.
    """


class StructuralError(RmdpError, ValueError):
    """
    The process definition is malformed, e.g. an uncertain action
    without outcomes, or an outcome without target states.
    """


class SingularSystem(RmdpError, ArithmeticError):
    """
    A linear system built from the process has no unique solution.
    """


class IndexOutOfRange(RmdpError, IndexError):
    """
    A state, action or outcome identifier is negative or out of range.
    """

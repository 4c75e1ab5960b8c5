"""
Reading and writing decision processes as csv files.

Files are handled with `tf.io.gfile`, so paths can point to
any file system tensorflow supports.
"""

import logging
from typing import Iterable, TypeVar

import tensorflow as tf

from rmdp import modeltools
from rmdp.process import CSV_HEADER, DecisionProcess

ProcessType = TypeVar("ProcessType", bound=DecisionProcess)


def to_csv_file(process: DecisionProcess, path: str, header: bool = True) -> None:
    """
    Saves the transition probabilities and rewards to a csv file.
    """
    logging.info("Exporting process with %d states to %s", process.state_count(), path)
    try:
        with tf.io.gfile.GFile(path, "w") as writer:
            process.to_csv(writer, header=header)
    except tf.errors.OpError as err:
        raise IOError(f"Failed to export process to {path}") from err


def from_csv(
    lines: Iterable[str], process: ProcessType, header: bool = True
) -> ProcessType:
    """
    Adds transitions from csv rows to `process`:
    idstatefrom, idaction, idoutcome, idstateto, probability, reward

    Args:
        lines: csv rows.
        process: the process to add transitions to; usually empty.
        header: whether the first row is a header, and should be skipped.

    Returns:
        The same `process`, with the transitions.
    """
    rows = iter(lines)
    if header:
        next(rows, None)
    for lineno, line in enumerate(rows, start=2 if header else 1):
        line = line.strip()
        if not line:
            continue
        fields = line.split(",")
        if len(fields) != len(CSV_HEADER):
            raise ValueError(
                f"Line {lineno} must have {len(CSV_HEADER)} fields; got {len(fields)}: {line}"
            )
        try:
            fromid, actionid, outcomeid, toid = (int(field) for field in fields[:4])
            probability, reward = float(fields[4]), float(fields[5])
        except ValueError as err:
            raise ValueError(f"Line {lineno} has invalid values: {line}") from err
        modeltools.add_transition(
            process,
            fromid=fromid,
            actionid=actionid,
            toid=toid,
            probability=probability,
            reward=reward,
            outcomeid=outcomeid,
        )
    return process


def from_csv_file(path: str, process: ProcessType, header: bool = True) -> ProcessType:
    """
    Loads transitions from a csv file into `process`.
    """
    logging.info("Loading process from %s", path)
    try:
        with tf.io.gfile.GFile(path, "r") as reader:
            return from_csv(reader, process, header=header)
    except tf.errors.NotFoundError as err:
        raise IOError(f"Failed to load file from {path}") from err

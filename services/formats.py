# ============================================================================
# PIPELINE FILE FORMATS
# ============================================================================
# STATUS: Service - Plain-text inputs for the external tools
# PURPOSE: FASTA, traits, coordinates and predictor files
# CREATED: 19 OCT 2026
# ============================================================================
"""
Pipeline File Formats

Small readers and writers for the text files the external tools consume.

Taxon labels are "<record_id>_<collection_date>"; the model generator reads
the date from the last underscore-separated field. Discrete state labels
are location names with whitespace replaced by underscores, used
identically in the traits, coordinates and predictor files.
"""

import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from core.models import GeoLocation, JobRecord

PathLike = Union[str, Path]

FASTA_LINE_WIDTH = 60


def taxon_label(record: JobRecord) -> str:
    """FASTA / model taxon label for a record."""
    record_id = re.sub(r"[_\s]+", "-", record.record_id.strip())
    return f"{record_id}_{record.collection_date}"


def state_label(name: str) -> str:
    """Discrete state label for a location name."""
    return re.sub(r"\s+", "_", name.strip())


def write_fasta(path: PathLike, records: Iterable[JobRecord]) -> int:
    """Write raw sequences. Returns the number of records written."""
    count = 0
    with Path(path).open("w", encoding="utf-8") as handle:
        for record in records:
            sequence = re.sub(r"\s+", "", record.sequence).upper()
            handle.write(f">{taxon_label(record)}\n")
            for start in range(0, len(sequence), FASTA_LINE_WIDTH):
                handle.write(sequence[start:start + FASTA_LINE_WIDTH] + "\n")
            count += 1
    return count


def read_fasta(path: PathLike) -> List[Tuple[str, str]]:
    """(label, sequence) pairs in file order."""
    entries: List[Tuple[str, str]] = []
    label = None
    chunks: List[str] = []
    with Path(path).open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            if line.startswith(">"):
                if label is not None:
                    entries.append((label, "".join(chunks)))
                label, chunks = line[1:].strip(), []
            else:
                chunks.append(line)
    if label is not None:
        entries.append((label, "".join(chunks)))
    return entries


def filter_fasta(path: PathLike, keep_labels: Iterable[str]) -> int:
    """Rewrite a FASTA file in place keeping only the given labels."""
    keep = set(keep_labels)
    entries = [(label, seq) for label, seq in read_fasta(path) if label in keep]
    with Path(path).open("w", encoding="utf-8") as handle:
        for label, sequence in entries:
            handle.write(f">{label}\n")
            for start in range(0, len(sequence), FASTA_LINE_WIDTH):
                handle.write(sequence[start:start + FASTA_LINE_WIDTH] + "\n")
    return len(entries)


def write_traits(path: PathLike, records: Sequence[JobRecord]) -> Dict[str, str]:
    """Write the taxon -> state table. Returns the mapping written."""
    taxa = {
        taxon_label(record): state_label(record.location.name)
        for record in records
        if record.location is not None
    }
    with Path(path).open("w", encoding="utf-8") as handle:
        handle.write("traits\tstates\n")
        for label, state in taxa.items():
            handle.write(f"{label}\t{state}\n")
    return taxa


def write_coordinates(path: PathLike, partition: Sequence[GeoLocation]) -> None:
    """One "state<TAB>latitude<TAB>longitude" row per partition member, no header."""
    with Path(path).open("w", encoding="utf-8") as handle:
        for location in partition:
            latitude = location.latitude if location.latitude is not None else 0.0
            longitude = location.longitude if location.longitude is not None else 0.0
            handle.write(f"{state_label(location.name)}\t{latitude}\t{longitude}\n")


def write_predictors(
    path: PathLike,
    partition: Sequence[GeoLocation],
    predictors: Mapping[str, Mapping[str, float]],
) -> List[str]:
    """
    Write the batch predictor table for the GLM script.

    Columns: state, lat, long, then every custom predictor (sorted).
    Predictor rows are matched to states case-insensitively.
    Returns the predictor names written.
    """
    by_state = {state_label(name).lower(): values for name, values in predictors.items()}
    names = sorted({name for values in predictors.values() for name in values})
    with Path(path).open("w", encoding="utf-8") as handle:
        handle.write("\t".join(["state", "lat", "long"] + names) + "\n")
        for location in partition:
            label = state_label(location.name)
            values = by_state.get(label.lower(), {})
            row = [
                label,
                str(location.latitude if location.latitude is not None else 0.0),
                str(location.longitude if location.longitude is not None else 0.0),
            ]
            row.extend(str(values.get(name, 0.0)) for name in names)
            handle.write("\t".join(row) + "\n")
    return names


def youngest_date(records: Iterable[JobRecord]) -> str:
    """Most recent collection date (decimal year string) among the records."""
    dates = []
    for record in records:
        try:
            dates.append((float(record.collection_date or ""), record.collection_date))
        except ValueError:
            continue
    if not dates:
        raise ValueError("No record has a numeric collection date")
    return max(dates)[1].strip()


__all__ = [
    "taxon_label",
    "state_label",
    "write_fasta",
    "read_fasta",
    "filter_fasta",
    "write_traits",
    "write_coordinates",
    "write_predictors",
    "youngest_date",
]

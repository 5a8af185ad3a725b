"""Structural checks for block graphs: unique block and source ids, no dangling connections."""

from collections import Counter
from dataclasses import dataclass, field

from .schema import BlockStructure, Connection


@dataclass
class GraphRepairReport:
    """What ``repair_block_structure`` changed."""

    assigned_ids: list[str] = field(default_factory=list)
    renamed_ids: dict[str, list[str]] = field(default_factory=dict)
    assigned_source_ids: list[str] = field(default_factory=list)
    renamed_source_ids: dict[str, list[str]] = field(default_factory=dict)
    dropped_connections: list[Connection] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.assigned_ids
            or self.renamed_ids
            or self.assigned_source_ids
            or self.renamed_source_ids
            or self.dropped_connections
        )

    def describe(self) -> list[str]:
        notes = [f"assigned id '{i}' to a block without one" for i in self.assigned_ids]
        for original, renamed in self.renamed_ids.items():
            notes.append(f"renamed duplicate block id '{original}' to {', '.join(renamed)}")
        notes.extend(f"assigned id '{i}' to a source without one" for i in self.assigned_source_ids)
        for original, renamed in self.renamed_source_ids.items():
            notes.append(f"renamed duplicate source id '{original}' to {', '.join(renamed)}")
        for conn in self.dropped_connections:
            notes.append(
                f"dropped connection {conn.source_block_id or '?'} -> "
                f"{conn.target_block_id or '?'} (unknown block)"
            )
        return notes


def _duplicates(ids) -> list[str]:
    counts = Counter(i for i in ids if i)
    return sorted(i for i, n in counts.items() if n > 1)


def find_duplicate_block_ids(structure: BlockStructure) -> list[str]:
    return _duplicates(b.id for b in structure.blocks)


def find_duplicate_source_ids(structure: BlockStructure) -> list[str]:
    return _duplicates(s.id for s in structure.sources)


def find_dangling_connections(structure: BlockStructure) -> list[Connection]:
    """Connections whose source or target is not a block in the structure."""
    ids = structure.block_ids
    return [
        c for c in structure.connections
        if c.source_block_id not in ids or c.target_block_id not in ids
    ]


def validate_block_structure(structure: BlockStructure) -> list[str]:
    """Return a list of integrity errors; empty means the graph is consistent.

    Cycles are allowed.
    """
    errors = []
    if any(not b.id for b in structure.blocks):
        errors.append("Every block must have a non-empty id")
    for block_id in find_duplicate_block_ids(structure):
        errors.append(f"Duplicate block id: {block_id}")
    if any(not s.id for s in structure.sources):
        errors.append("Every source must have a non-empty id")
    for source_id in find_duplicate_source_ids(structure):
        errors.append(f"Duplicate source id: {source_id}")
    for conn in find_dangling_connections(structure):
        errors.append(
            f"Connection {conn.source_block_id!r} -> {conn.target_block_id!r} "
            "references a block that does not exist"
        )
    return errors


def _assign_unique_ids(items, prefix: str) -> tuple[list[str], dict[str, list[str]]]:
    """Give every item a unique ``id`` in place.

    Items without an id get ``<prefix>-<n>``. Later items reusing an id are
    renamed ``<id>-<k>``.
    """
    assigned: list[str] = []
    renamed: dict[str, list[str]] = {}
    seen: set[str] = {item.id for item in items if item.id}
    used: set[str] = set()

    counter = 0
    for item in items:
        if not item.id:
            counter += 1
            while f"{prefix}-{counter}" in seen:
                counter += 1
            item.id = f"{prefix}-{counter}"
            seen.add(item.id)
            assigned.append(item.id)
        elif item.id in used:
            original = item.id
            suffix = 2
            while f"{original}-{suffix}" in seen:
                suffix += 1
            item.id = f"{original}-{suffix}"
            seen.add(item.id)
            renamed.setdefault(original, []).append(item.id)
        used.add(item.id)

    return assigned, renamed


def repair_block_structure(structure: BlockStructure) -> GraphRepairReport:
    """Fix a generated graph in place so it satisfies the integrity rules.

    Blocks and sources without an id get ``block-<n>`` / ``source-<n>``.
    Later blocks or sources reusing an id are renamed ``<id>-<k>``;
    connections keep pointing at the first block with that id. Connections
    to unknown blocks are dropped.
    """
    report = GraphRepairReport()
    report.assigned_ids, report.renamed_ids = _assign_unique_ids(structure.blocks, "block")
    report.assigned_source_ids, report.renamed_source_ids = _assign_unique_ids(
        structure.sources, "source"
    )

    dangling = find_dangling_connections(structure)
    if dangling:
        structure.connections = [c for c in structure.connections if c not in dangling]
        report.dropped_connections.extend(dangling)

    return report

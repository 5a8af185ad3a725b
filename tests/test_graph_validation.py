"""
Unit tests for block graph integrity checks and repair.
"""

import unittest

from analyzer.graph_validation import repair_block_structure, validate_block_structure
from analyzer.schema import BlockStructure


def _structure(blocks, connections, sources=()):
    return BlockStructure.from_dict({"blocks": blocks, "sources": list(sources), "connections": connections})


class TestValidateBlockStructure(unittest.TestCase):
    """Test integrity validation."""

    def test_valid_graph(self):
        """A consistent graph has no errors."""
        structure = _structure(
            [{"id": "a"}, {"id": "b"}],
            [{"sourceBlockId": "a", "targetBlockId": "b"}],
        )
        self.assertEqual(validate_block_structure(structure), [])

    def test_cycles_allowed(self):
        """Loops are valid workflows."""
        structure = _structure(
            [{"id": "a"}, {"id": "b"}],
            [{"sourceBlockId": "a", "targetBlockId": "b"}, {"sourceBlockId": "b", "targetBlockId": "a"}],
        )
        self.assertEqual(validate_block_structure(structure), [])

    def test_duplicate_ids(self):
        """Duplicate block ids are reported."""
        errors = validate_block_structure(_structure([{"id": "a"}, {"id": "a"}], []))
        self.assertEqual(len(errors), 1)
        self.assertIn("Duplicate block id: a", errors[0])

    def test_dangling_connection(self):
        """Connections to missing blocks are reported."""
        errors = validate_block_structure(
            _structure([{"id": "a"}], [{"sourceBlockId": "a", "targetBlockId": "ghost"}])
        )
        self.assertEqual(len(errors), 1)
        self.assertIn("ghost", errors[0])

    def test_duplicate_source_ids(self):
        """Duplicate source ids are reported."""
        sources = [{"id": "s1", "type": "file"}, {"id": "s1", "type": "web"}]
        errors = validate_block_structure(_structure([{"id": "a"}], [], sources))
        self.assertEqual(errors, ["Duplicate source id: s1"])

    def test_empty_source_id(self):
        """Sources without an id are reported."""
        errors = validate_block_structure(_structure([{"id": "a"}], [], [{"type": "api"}]))
        self.assertEqual(errors, ["Every source must have a non-empty id"])


class TestRepairBlockStructure(unittest.TestCase):
    """Test in-place repair of generated graphs."""

    def test_assigns_missing_ids(self):
        """Blocks without ids get generated ones."""
        structure = _structure([{"title": "x"}, {"id": "block-1"}], [])
        report = repair_block_structure(structure)
        ids = [b.id for b in structure.blocks]
        self.assertEqual(len(set(ids)), 2)
        self.assertNotIn("", ids)
        self.assertEqual(report.assigned_ids, [ids[0]])

    def test_renames_duplicates(self):
        """Later duplicates are renamed; the first keeps its id."""
        structure = _structure([{"id": "a"}, {"id": "a"}, {"id": "a"}], [])
        report = repair_block_structure(structure)
        self.assertEqual([b.id for b in structure.blocks], ["a", "a-2", "a-3"])
        self.assertEqual(report.renamed_ids, {"a": ["a-2", "a-3"]})

    def test_source_ids_made_unique(self):
        """Sources get generated ids and duplicates are renamed, like blocks."""
        sources = [{"id": "s1", "type": "file"}, {"id": "s1", "type": "web"}, {"type": "api"}]
        structure = _structure([{"id": "a"}], [], sources)

        report = repair_block_structure(structure)

        self.assertEqual([s.id for s in structure.sources], ["s1", "s1-2", "source-1"])
        self.assertEqual(report.renamed_source_ids, {"s1": ["s1-2"]})
        self.assertEqual(report.assigned_source_ids, ["source-1"])
        self.assertEqual(validate_block_structure(structure), [])

    def test_drops_dangling(self):
        """Connections to unknown blocks are removed."""
        structure = _structure(
            [{"id": "a"}, {"id": "b"}],
            [{"sourceBlockId": "a", "targetBlockId": "b"}, {"sourceBlockId": "a", "targetBlockId": "z"}],
        )
        report = repair_block_structure(structure)
        self.assertEqual(len(structure.connections), 1)
        self.assertEqual(len(report.dropped_connections), 1)
        self.assertEqual(validate_block_structure(structure), [])

    def test_clean_graph_unchanged(self):
        """Repairing a valid graph changes nothing."""
        structure = _structure([{"id": "a"}], [])
        self.assertFalse(repair_block_structure(structure).changed)


if __name__ == "__main__":
    unittest.main()

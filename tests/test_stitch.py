"""Test joining chapters into one continuous document."""

from webbyt import Boundary, chapter_at, chapter_span, chapter_start, stitch


class TestStitch:
    """Test stitching chapters into one document."""

    def test_headers_and_boundaries(self):
        """Test headers and boundaries."""
        lines, boundaries = stitch([(0, "a b"), (1, "c")], 20, {0: "One"})
        assert lines == ["", "━━━ One ━━━", "", "a b",
                         "", "━━━ Chapter 2 ━━━", "", "c"]
        assert boundaries == [Boundary(0, 0), Boundary(1, 4)]

    def test_chapters_are_wrapped(self):
        """Test chapters are wrapped."""
        lines, _ = stitch([(0, "alpha beta gamma")], 10, {0: "T"})
        assert lines[3:] == ["alpha beta", "gamma"]

    def test_empty_book(self):
        """Test empty book."""
        lines, boundaries = stitch([], 20)
        assert lines == [""]
        assert boundaries == []

    def test_boundaries_strictly_increase(self):
        """Test boundaries strictly increase."""
        chapters = [(n, "\n".join("x" * n for _ in range(n))) for n in range(6)]
        _, boundaries = stitch(chapters, 20)
        assert boundaries[0].first_line == 0
        for a, b in zip(boundaries, boundaries[1:]):
            assert a.chapter < b.chapter
            assert a.first_line < b.first_line


class TestChapterLookup:
    """Test mapping lines to chapters and back."""

    def setup_method(self):
        chapters = [(0, "one\ntwo"), (1, "three"), (2, "four\nfive\nsix")]
        self.lines, self.boundaries = stitch(chapters, 20)

    def test_chapter_at(self):
        """Test finding the chapter of a line."""
        assert chapter_at(self.boundaries, 0) == 0
        assert chapter_at(self.boundaries, 4) == 0
        assert chapter_at(self.boundaries, 5) == 1
        assert chapter_at(self.boundaries, 9) == 2
        assert chapter_at(self.boundaries, 500) == 2

    def test_chapter_at_covers_every_chapter_in_order(self):
        """Test chapter at covers every chapter in order."""
        owners = [chapter_at(self.boundaries, n) for n in range(len(self.lines))]
        assert owners == sorted(owners)
        assert set(owners) == {0, 1, 2}

    def test_chapter_start(self):
        """Test finding the first line of a chapter."""
        assert [chapter_start(self.boundaries, n) for n in range(3)] == [0, 5, 9]

    def test_chapter_start_maps_back(self):
        """Test chapter start maps back."""
        for boundary in self.boundaries:
            assert chapter_at(self.boundaries, chapter_start(self.boundaries, boundary.chapter)) == boundary.chapter

    def test_chapter_span(self):
        """Test the line span of a chapter."""
        assert chapter_span(self.boundaries, 1, len(self.lines)) == (5, 9)
        assert chapter_span(self.boundaries, 2, len(self.lines)) == (9, 15)

    def test_no_boundaries(self):
        """Test no boundaries."""
        assert chapter_at([], 10) == 0

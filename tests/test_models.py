"""
Tests for entity records, the Response envelope and tag filtering.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime

import pytest

from tagged_music.core.models import Song, Tag, TagType, User, from_iso, to_iso
from tagged_music.core.response import Response, Status
from tagged_music.core.source import filter_by_tags


class TestModels:
    def test_song_tags_normalized_to_frozenset(self) -> None:
        song = Song("a.mp3", "A", 10, tags=["rock", "live", "rock"])
        assert song.tags == frozenset({"rock", "live"})
        assert isinstance(song.tags, frozenset)

    def test_song_defaults(self) -> None:
        before = datetime.now()
        song = Song("a.mp3", "A", 10)
        assert song.track_num is None
        assert song.release_date is None
        assert song.play_count == 0
        assert song.tags == frozenset()
        assert song.create_date >= before
        assert song.modify_date >= before

    def test_song_with_tags_returns_copy(self) -> None:
        song = Song("a.mp3", "A", 10, tags={"rock"})
        changed = song.with_tags({"jazz"})
        assert changed.tags == frozenset({"jazz"})
        assert song.tags == frozenset({"rock"})
        assert changed.title == song.title

    def test_records_are_immutable(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            Tag().type = "x"  # type: ignore[misc]
        with pytest.raises(dataclasses.FrozenInstanceError):
            User(1, "a", "h").admin = True  # type: ignore[misc]

    def test_tag_with_type(self) -> None:
        tag = Tag("genre", "desc")
        assert tag.with_type(None) == Tag(None, "desc")

    def test_tag_types_compare_by_value(self) -> None:
        assert TagType(3) == TagType(3)
        assert TagType(3) != TagType(4)

    def test_iso_helpers(self) -> None:
        value = datetime(2021, 5, 4, 3, 2, 1, 123456)
        assert from_iso(to_iso(value)) == value
        assert to_iso(None) is None
        assert from_iso(None) is None


class TestResponse:
    def test_success(self) -> None:
        response = Response.success(5)
        assert response.result == 5
        assert response.status is Status.SUCCESS
        assert response.ok

    def test_bad_request(self) -> None:
        response = Response.bad_request(None)
        assert response.status is Status.BAD_REQUEST
        assert not response.ok

    @pytest.mark.parametrize("status", [Status.CONNECTION_ISSUE, Status.TIME_OUT])
    def test_backend_failures_are_not_ok(self, status: Status) -> None:
        assert not Response({}, status).ok


class TestFilterByTags:
    songs = {
        1: Song("1.mp3", "one", 1, tags={"a"}),
        2: Song("2.mp3", "two", 1, tags={"a", "b"}),
        3: Song("3.mp3", "three", 1, tags={"b"}),
        4: Song("4.mp3", "four", 1),
    }

    def test_no_filters_returns_everything(self) -> None:
        assert filter_by_tags(self.songs) == self.songs

    def test_include_requires_every_tag(self) -> None:
        assert set(filter_by_tags(self.songs, {"a"})) == {1, 2}
        assert set(filter_by_tags(self.songs, {"a", "b"})) == {2}

    def test_exclude_rejects_any_tag(self) -> None:
        assert set(filter_by_tags(self.songs, (), {"a"})) == {3, 4}
        assert set(filter_by_tags(self.songs, (), {"a", "b"})) == {4}

    def test_include_and_exclude(self) -> None:
        assert set(filter_by_tags(self.songs, {"a"}, {"b"})) == {1}

    def test_result_is_a_new_mapping(self) -> None:
        result = filter_by_tags(self.songs)
        result.clear()
        assert len(self.songs) == 4

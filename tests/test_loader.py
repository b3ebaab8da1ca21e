"""Tests for request loading and validation."""

from __future__ import annotations

import json

import pytest

from timetable_engine.data.loader import load_request, parse_request, save_request
from timetable_engine.errors import InvalidInputError


@pytest.fixture
def camel_payload() -> dict:
    return {
        "schoolId": "school-9",
        "term": "2025-T2",
        "grid": {"numDays": 5, "slotsPerDay": 6},
        "classes": [{"id": "c1", "name": "Year 9A", "studentCount": 24}],
        "subjects": [{"id": "mat", "name": "Mathematics"}],
        "teachers": [
            {
                "id": "t1",
                "name": "Ada Lovelace",
                "subjects": ["mat"],
                "unavailable": [{"day": 0, "slot": 0}],
                "preferredMaxPerDay": 4,
            }
        ],
        "requirements": [{"classId": "c1", "subjectId": "mat", "periodsPerWeek": 4}],
        "seed": 11,
    }


class TestParseRequest:

    def test_camel_case_payload(self, camel_payload):
        request = parse_request(camel_payload)
        assert request.school_id == "school-9"
        assert request.grid.slots_per_day == 6
        assert request.classes[0].student_count == 24
        assert request.teachers[0].preferred_max_per_day == 4
        assert request.requirements[0].id == "c1/mat"
        assert request.seed == 11

    def test_snake_case_payload(self, two_class_request):
        request = parse_request(two_class_request.model_dump())
        assert request == two_class_request

    def test_not_a_mapping(self):
        with pytest.raises(InvalidInputError, match="must be an object"):
            parse_request(["not", "a", "dict"])

    def test_errors_are_collected(self, camel_payload):
        camel_payload["requirements"][0]["periodsPerWeek"] = 0
        del camel_payload["classes"][0]["name"]
        with pytest.raises(InvalidInputError) as exc:
            parse_request(camel_payload)
        assert len(exc.value.errors) == 2
        assert any("periods_per_week" in e for e in exc.value.errors)
        assert any("name" in e for e in exc.value.errors)

    def test_reference_errors_surface(self, camel_payload):
        camel_payload["requirements"][0]["subjectId"] = "art"
        with pytest.raises(InvalidInputError, match="unknown subject_id 'art'"):
            parse_request(camel_payload)


class TestLoadRequest:

    def test_load_from_file(self, tmp_path, camel_payload):
        path = tmp_path / "request.json"
        path.write_text(json.dumps(camel_payload), encoding="utf-8")
        request = load_request(path)
        assert request.school_id == "school-9"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_request(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            load_request(path)

    def test_save_and_reload(self, tmp_path, school_request):
        path = save_request(school_request, tmp_path / "nested" / "request.json")
        assert path.exists()
        assert load_request(path) == school_request

"""Tests for parsing and normalizing the OCR model's reply."""

import pytest

from id_scanner.errors import ApiError
from id_scanner.ocr.normalize import (
    canonical_key,
    clean_value,
    extract_json_object,
    normalize_extracted_data,
    parse_ocr_reply,
)


class TestExtractJsonObject:
    """Tests for pulling a JSON object out of free text."""

    def test_plain_json(self) -> None:
        assert extract_json_object('{"Last Name": "DOE"}') == {"Last Name": "DOE"}

    def test_json_surrounded_by_prose(self) -> None:
        text = 'Here is the data:\n```json\n{"First Name": "JANE"}\n```\nLet me know.'
        assert extract_json_object(text) == {"First Name": "JANE"}

    def test_nested_braces_are_kept(self) -> None:
        text = 'Result: {"a": {"b": 1}, "c": 2} done'
        assert extract_json_object(text) == {"a": {"b": 1}, "c": 2}

    def test_no_object_raises(self) -> None:
        with pytest.raises(ApiError) as exc_info:
            extract_json_object("I could not read this document.")
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Could not parse OCR response"

    def test_malformed_object_raises(self) -> None:
        with pytest.raises(ApiError) as exc_info:
            extract_json_object('{"Last Name": "DOE",}')
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Failed to parse OCR JSON response"

    def test_greedy_match_spanning_two_objects_fails(self) -> None:
        with pytest.raises(ApiError):
            extract_json_object('{"a": 1} and also {"b": 2}')


class TestCanonicalKey:
    """Tests for key spelling normalization."""

    @pytest.mark.parametrize(
        "key, expected",
        [
            ("surname", "lastName"),
            ("Last Name", "lastName"),
            ("lastName", "lastName"),
            ("family_name", "lastName"),
            ("Given Name", "firstName"),
            ("ID Number", "id"),
            ("license", "id"),
            ("Middle Initial", "middleInitial"),
            ("address", "addressStreet"),
            ("Address City", "addressCity"),
            ("state", "addressState"),
            ("zip_code", "addressZip"),
            ("Postal Code", "addressZip"),
            ("gender", "sex"),
            ("DOB", "dob"),
            ("date-of-birth", "dob"),
        ],
    )
    def test_known_spellings(self, key: str, expected: str) -> None:
        assert canonical_key(key) == expected

    def test_unknown_key(self) -> None:
        assert canonical_key("eye color") is None


class TestCleanValue:
    """Tests for per-field value cleanup."""

    def test_middle_initial_uppercased_and_truncated(self) -> None:
        assert clean_value("middleInitial", "quincy") == "Q"

    def test_sex_female(self) -> None:
        assert clean_value("sex", "female") == "F"

    def test_sex_male(self) -> None:
        assert clean_value("sex", "Male") == "M"

    def test_sex_anything_else_is_f(self) -> None:
        assert clean_value("sex", "X") == "F"

    def test_zip_digits_only(self) -> None:
        assert clean_value("addressZip", "90210-1234") == "90210"

    def test_other_fields_trimmed(self) -> None:
        assert clean_value("addressCity", "  Springfield ") == "Springfield"

    def test_non_string_values_stringified(self) -> None:
        assert clean_value("id", 123456) == "123456"


class TestNormalizeExtractedData:
    """Tests for whole-object normalization."""

    def test_surname_maps_to_last_name(self) -> None:
        assert normalize_extracted_data({"surname": "DOE"}) == {"lastName": "DOE"}

    def test_gender_female_maps_to_f(self) -> None:
        assert normalize_extracted_data({"gender": "female"}) == {"sex": "F"}

    def test_drops_unknown_and_empty_values(self) -> None:
        data = {"Last Name": "DOE", "First Name": "", "Height": "5-10", "DOB": None}
        assert normalize_extracted_data(data) == {"lastName": "DOE"}

    def test_full_reply(self) -> None:
        reply = """Here is the extracted information:
{
  "ID Number": "D1234567",
  "Last Name": "SAMPLE",
  "First Name": "JOHN",
  "Middle Initial": "q",
  "Address Street": "123 MAIN ST",
  "Address City": "ANYTOWN",
  "Address State": "CA",
  "Address Zip": "95814-0001",
  "Sex": "Male",
  "DOB": "1985-06-15"
}"""
        assert parse_ocr_reply(reply) == {
            "id": "D1234567",
            "lastName": "SAMPLE",
            "firstName": "JOHN",
            "middleInitial": "Q",
            "addressStreet": "123 MAIN ST",
            "addressCity": "ANYTOWN",
            "addressState": "CA",
            "addressZip": "95814",
            "sex": "M",
            "dob": "1985-06-15",
        }

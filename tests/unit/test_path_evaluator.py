"""Unit tests for path expressions."""

import pytest

from dynprov.models.data_models import ExtractionContext
from dynprov.processor.path_evaluator import evaluate_path, to_number, values_by_path


class TestEvaluatePath:

    def test_nested_path(self):
        assert evaluate_path({"a": {"b": {"c": 5}}}, "a.b.c") == 5

    def test_fallback_chain_uses_first_resolving_alternative(self):
        assert evaluate_path({"a": {"x": 9}}, "a.b.c|a.x") == 9

    def test_fallback_chain_exhausted(self):
        assert evaluate_path({"a": {}}, "a.b|a.c") is None

    def test_first_key_and_value_preserve_order(self):
        data = {"z": 1, "y": 2}
        assert evaluate_path(data, "$firstKey") == "z"
        assert evaluate_path(data, "$firstValue") == 1

    def test_last_key_and_value(self):
        data = {"z": 1, "y": 2}
        assert evaluate_path(data, "$lastKey") == "y"
        assert evaluate_path(data, "$lastValue") == 2

    def test_accessor_after_segment(self):
        data = {"iso": {"ru": 1}, "prefix": {"+7": 1}}
        assert evaluate_path(data, "iso.$firstKey") == "ru"
        assert evaluate_path(data, "prefix.$firstKey") == "+7"

    def test_missing_intermediate_returns_none(self):
        assert evaluate_path({"a": None}, "a.b.c") is None
        assert evaluate_path({}, "missing") is None

    def test_empty_path_returns_data(self):
        data = {"a": 1}
        assert evaluate_path(data, None) is data
        assert evaluate_path(data, "") is data
        assert evaluate_path(data, "$") is data

    def test_list_index_segments(self):
        data = {"sms": [{"code": "111"}, {"code": "222"}]}
        assert evaluate_path(data, "sms.1.code") == "222"
        assert evaluate_path(data, "sms[0].code") == "111"
        assert evaluate_path(data, "sms.5.code") is None

    def test_context_accessors(self):
        context = ExtractionContext(
            key="virtual21",
            parent_key="whatsapp",
            grand_parent_key="russia",
            operator_key="11",
            index=3,
            value={"cost": 1},
        )
        assert evaluate_path({}, "$key", context) == "virtual21"
        assert evaluate_path({}, "$parentKey", context) == "whatsapp"
        assert evaluate_path({}, "$grandParentKey", context) == "russia"
        assert evaluate_path({}, "$operatorKey", context) == "11"
        assert evaluate_path({}, "$index", context) == 3
        assert evaluate_path({}, "$value", context) == {"cost": 1}

    def test_context_accessor_in_fallback_chain(self):
        context = ExtractionContext(key="wa")
        assert evaluate_path({}, "code|$key", context) == "wa"

    def test_aggregate_accessors(self):
        data = {"prices": {"a": 3, "b": "1.5", "c": 7}}
        assert evaluate_path(data, "prices.$min") == 1.5
        assert evaluate_path(data, "prices.$max") == 7
        assert evaluate_path(data, "prices.$sum") == 11.5
        assert evaluate_path(data, "prices.$count") == 3
        assert evaluate_path(data, "prices.$keys") == ["a", "b", "c"]

    def test_string_accessors(self):
        data = {"name": "  Russia ", "tags": ["a", "b"]}
        assert evaluate_path(data, "name.$trim") == "Russia"
        assert evaluate_path(data, "name.$trim.$upper") == "RUSSIA"
        assert evaluate_path(data, "tags.$join:,") == "a,b"
        assert evaluate_path({"pair": "wa:5"}, "pair.$split::") == ["wa", "5"]

    def test_default_exists_and_type(self):
        assert evaluate_path({}, "missing.$default:0") == "0"
        assert evaluate_path({"a": 1}, "a.$exists") is True
        assert evaluate_path({}, "a.$exists") is False
        assert evaluate_path({"a": [1]}, "a.$type") == "array"
        assert evaluate_path({"a": None}, "a.$type") == "null"

    def test_list_accessors(self):
        data = {"xs": [3, 1, 2]}
        assert evaluate_path(data, "xs.$avg") == 2.0
        assert evaluate_path(data, "xs.$average") == 2.0
        assert evaluate_path(data, "xs.$sort") == [1, 2, 3]
        assert evaluate_path(data, "xs.$reverse") == [2, 1, 3]
        assert evaluate_path(data, "xs.$slice:0:2") == [3, 1]
        assert evaluate_path(data, "xs.$slice:1") == [1, 2]
        assert data["xs"] == [3, 1, 2]

    def test_avg_without_numbers(self):
        assert evaluate_path({"xs": ["a"]}, "xs.$avg") is None

    def test_unique_and_flatten(self):
        assert evaluate_path({"xs": [1, 2, 1, {"a": 1}, {"a": 1}]}, "xs.$unique") == [1, 2, {"a": 1}]
        assert evaluate_path({"xs": [1, [2, [3, 4]], 5]}, "xs.$flatten") == [1, 2, 3, 4, 5]

    def test_sort_mixed_types(self):
        assert evaluate_path({"xs": [2, "a", 1]}, "xs.$sort") == [1, 2, "a"]

    def test_list_accessors_leave_scalars_alone(self):
        assert evaluate_path({"s": "abc"}, "s.$reverse") == "abc"
        assert evaluate_path({"s": "abc"}, "s.$slice:0:1") == "abc"

    def test_string_shaping_accessors(self):
        data = {"s": "hello", "phone": "7-900-123", "n": 7}
        assert evaluate_path(data, "s.$substring:0:2") == "he"
        assert evaluate_path(data, "s.$substring:3") == "lo"
        assert evaluate_path(data, "phone.$replace:-:") == "7900123"
        assert evaluate_path(data, "phone.$replace:[0-9]+:#") == "#-#-#"
        assert evaluate_path(data, "n.$padStart:3:0") == "007"
        assert evaluate_path(data, "n.$padEnd:3") == "7  "
        assert evaluate_path(data, "s.$padStart:2:0") == "hello"

    def test_conversion_accessors(self):
        data = {"price": "2.7", "flag": "Yes", "off": "no", "n": 0, "raw": '{"a": [1]}', "bad": "{x"}
        assert evaluate_path(data, "price.$int") == 2
        assert evaluate_path(data, "price.$float") == 2.7
        assert evaluate_path({"n": 3}, "n.$float") == 3.0
        assert evaluate_path(data, "flag.$bool") is True
        assert evaluate_path(data, "off.$boolean") is False
        assert evaluate_path(data, "n.$bool") is False
        assert evaluate_path(data, "n.$str") == "0"
        assert evaluate_path(data, "raw.$json.a.0") == 1
        assert evaluate_path(data, "bad.$json") == "{x"
        assert evaluate_path({"o": {"a": [1, 2]}}, "o.$stringify") == '{"a":[1,2]}'
        assert evaluate_path({"x": "abc"}, "x.$int") is None

    def test_if_empty(self):
        assert evaluate_path({"name": ""}, "name.$ifEmpty:unknown") == "unknown"
        assert evaluate_path({}, "name.$ifEmpty:unknown") == "unknown"
        assert evaluate_path({"name": "Bob"}, "name.$ifEmpty:unknown") == "Bob"

    def test_object_accessors(self):
        data = {"o": {"a": 1, "b": 2, "c": 3}}
        assert evaluate_path(data, "o.$entries") == [["a", 1], ["b", 2], ["c", 3]]
        assert evaluate_path(data, "o.$pick:a, c,z") == {"a": 1, "c": 3}
        assert evaluate_path(data, "o.$omit:a,b") == {"c": 3}
        assert evaluate_path({"xs": ["x"]}, "xs.$entries") == [["0", "x"]]
        assert evaluate_path({"n": 5}, "n.$entries") == []

    def test_unknown_accessor_is_plain_lookup(self):
        assert evaluate_path({"$ref": 4}, "$ref") == 4


class TestValuesByPath:

    def test_wildcard_expands_every_child(self):
        data = {"data": {"a": {"items": 1}, "b": {"items": 2}}}
        assert values_by_path(data, "data.*.items") == [1, 2]

    def test_wildcard_over_list(self):
        data = {"groups": [{"n": 1}, {"n": 2}, {}]}
        assert values_by_path(data, "groups.*.n") == [1, 2]

    def test_missing_branch_yields_empty(self):
        assert values_by_path({}, "data.*.items") == []


class TestToNumber:

    @pytest.mark.parametrize("raw,expected", [
        ("12", 12),
        ("12.5", 12.5),
        (" 7 ", 7),
        (3, 3),
        (True, 1),
    ])
    def test_numeric_values(self, raw, expected):
        assert to_number(raw) == expected

    def test_decimal_string_stays_float(self):
        value = to_number("100.50")
        assert value == 100.5
        assert isinstance(value, float)

    def test_non_numeric(self):
        assert to_number("abc") is None
        assert to_number(None) is None

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from stub_server.errors import ConfigurationError
from stub_server.loader import (
    directory_sort_key,
    load_stubs_from_directory,
    load_stubs_from_file,
    parse_stub,
    parse_stub_document,
    parse_stubs,
)


def _stub_payload(path: str, status: int = 200) -> dict:
    return {"request": {"path": path}, "response": {"status": status}}


def test_parse_stub_applies_defaults() -> None:
    stub = parse_stub('{"request": {"path": "/ping"}, "response": {}}')

    assert stub.request.method == "GET"
    assert stub.resolved_responses[0].status == 200
    assert stub.resolved_responses[0].delay_ms is None


def test_parse_stub_ignores_unknown_keys() -> None:
    stub = parse_stub('{"request": {"path": "/ping", "note": "x"}, "response": {"status": 204}, "id": 7}')

    assert stub.resolved_responses[0].status == 204


def test_parse_stubs_requires_an_array() -> None:
    assert len(parse_stubs(json.dumps([_stub_payload("/a"), _stub_payload("/b")]))) == 2
    with pytest.raises(ConfigurationError, match="array"):
        parse_stubs(json.dumps(_stub_payload("/a")))


def test_document_detection_is_structural() -> None:
    single = parse_stub_document("  \n" + json.dumps(_stub_payload("/a")))
    many = parse_stub_document("\n\t" + json.dumps([_stub_payload("/a"), _stub_payload("/b")]))

    assert [stub.request.path for stub in single] == ["/a"]
    assert [stub.request.path for stub in many] == ["/a", "/b"]


def test_invalid_json_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        parse_stub_document("{not json")


def test_wrong_field_type_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="invalid"):
        parse_stub('{"request": {"path": "/a"}, "response": {"status": "soon"}}')


def test_array_items_must_be_objects() -> None:
    with pytest.raises(ConfigurationError, match=r"\[1\]"):
        parse_stub_document(json.dumps([_stub_payload("/a"), "oops"]))


def test_missing_responses_in_file_names_the_constraint(tmp_path: Path) -> None:
    stub_file = tmp_path / "broken.json"
    stub_file.write_text(json.dumps({"request": {"path": "/x"}, "responses": []}), encoding="utf-8")

    with pytest.raises(ConfigurationError, match="must not be empty"):
        load_stubs_from_file(stub_file)


def test_yaml_stub_file(tmp_path: Path) -> None:
    stub_file = tmp_path / "users.yaml"
    stub_file.write_text(
        yaml.safe_dump(
            [
                {
                    "request": {"method": "GET", "pathPattern": r"/users/\d+"},
                    "responses": [{"status": 503}, {"status": 200, "body": {"id": 1}}],
                }
            ]
        ),
        encoding="utf-8",
    )

    (stub,) = load_stubs_from_file(stub_file)

    assert stub.request.path_pattern == r"/users/\d+"
    assert [item.status for item in stub.resolved_responses] == [503, 200]


def test_missing_file_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="Cannot read"):
        load_stubs_from_file(tmp_path / "absent.json")


def test_directory_sort_key_joins_nested_parts(tmp_path: Path) -> None:
    assert directory_sort_key(tmp_path / "auth" / "login.json", tmp_path) == "auth_login.json"
    assert directory_sort_key(tmp_path / "ping.json", tmp_path) == "ping.json"


def test_directory_loading_is_recursive_and_ordered(tmp_path: Path) -> None:
    (tmp_path / "auth").mkdir()
    (tmp_path / "users" / "admin").mkdir(parents=True)
    (tmp_path / "zeta.json").write_text(json.dumps(_stub_payload("/zeta")), encoding="utf-8")
    (tmp_path / "auth" / "login.json").write_text(
        json.dumps([_stub_payload("/login"), _stub_payload("/logout")]), encoding="utf-8"
    )
    (tmp_path / "auth_a.json").write_text(json.dumps(_stub_payload("/auth-a")), encoding="utf-8")
    (tmp_path / "users" / "admin" / "list.yml").write_text(
        yaml.safe_dump(_stub_payload("/admins")), encoding="utf-8"
    )
    (tmp_path / "README.md").write_text("not a stub", encoding="utf-8")

    stubs = load_stubs_from_directory(tmp_path)

    # Sort keys: auth_a.json, auth_login.json, users_admin_list.yml, zeta.json
    assert [stub.request.path for stub in stubs] == ["/auth-a", "/login", "/logout", "/admins", "/zeta"]


def test_missing_directory_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="does not exist"):
        load_stubs_from_directory(tmp_path / "nope")


def test_request_rule_errors_name_the_stub_file(tmp_path: Path) -> None:
    (tmp_path / "auth").mkdir()
    (tmp_path / "auth" / "bad.json").write_text(
        json.dumps({"request": {"path": "/x", "pathPattern": "/x.*"}, "response": {}}),
        encoding="utf-8",
    )

    with pytest.raises(ConfigurationError, match=r"bad\.json.*both 'path'"):
        load_stubs_from_directory(tmp_path)


def test_invalid_pattern_error_names_the_array_item() -> None:
    document = json.dumps([_stub_payload("/a"), {"request": {"pathPattern": "(unclosed"}, "response": {}}])

    with pytest.raises(ConfigurationError, match=r"\[1\].*not a valid regular expression"):
        parse_stub_document(document)

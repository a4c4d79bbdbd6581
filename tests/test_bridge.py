from __future__ import annotations

import pytest


def test_encode_selector_prefixes() -> None:
    from tabwright.bridge import encode_selector
    from tabwright.xpath import xpath

    assert encode_selector("#main .item") == "s#main .item"
    assert encode_selector("//div") == "x//div"
    assert encode_selector(xpath("span")) == "x//span"
    with pytest.raises(ValueError):
        encode_selector("")
    with pytest.raises(TypeError):
        encode_selector(None)


def test_build_call_json_encodes_arguments() -> None:
    from tabwright.bridge import build_call

    assert build_call("setChecked", "#agree", True) == 'window._tabwright.setChecked("s#agree", true)'
    assert build_call("getProperties", "a", ["href", "id"]) == 'window._tabwright.getProperties("sa", ["href", "id"])'
    with pytest.raises(ValueError):
        build_call("dropTables", "a")


def test_helper_defines_every_operation() -> None:
    from tabwright.bridge import HELPER_OPERATIONS
    from tabwright.helper_script import HELPER_JS, HELPER_VERSION

    for op in HELPER_OPERATIONS:
        assert f"h.{op} =" in HELPER_JS, op
    assert f'version === "{HELPER_VERSION}"' in HELPER_JS


def test_script_response_envelope() -> None:
    from tabwright.bridge import ScriptResponse
    from tabwright.errors import ScriptError

    ok = ScriptResponse.from_envelope({"success": True, "result": ["a", None]})
    assert ok.success and not ok.failed
    assert ok.result_str_list() == ["a", ""]

    missing = ScriptResponse.from_envelope({"success": False, "guard": "element is not visible"})
    assert missing.predicate("isVisible", "#x") is False

    broken = ScriptResponse.from_envelope("nonsense")
    assert broken.failed
    with pytest.raises(ScriptError) as exc:
        broken.predicate("exists", "#x")
    assert exc.value.details == {"selector": "#x"}


def test_bridge_installs_helper_before_calling() -> None:
    from tabwright.bridge import CommandBridge
    from tabwright.errors import ScriptError

    log: list[str] = []

    def run_script(expression: str) -> dict:
        log.append(expression)
        return {"success": True, "result": 5}

    bridge = CommandBridge(run_script, lambda: log.append("install"))
    assert bridge.call("count", "li").result_int() == 5
    assert log == ["install", 'window._tabwright.count("sli")']

    def failing(_expression: str) -> dict:
        raise ScriptError(reason="TypeError: window._tabwright is undefined")

    response = CommandBridge(failing, lambda: None).call("exists", "a")
    assert response.failed
    assert "window._tabwright is undefined" in response.error

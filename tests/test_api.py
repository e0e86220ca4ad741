import pytest
from fastapi.testclient import TestClient

from codelens_engine import EngineSettings
from codelens_engine.api import create_app
from codelens_engine.insights import Diagnosis, Visualization


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(EngineSettings(timeout_ms=5000, trace_timeout_ms=4000)))


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_languages(client: TestClient) -> None:
    assert client.get("/api/languages").json() == {"languages": ["python", "c", "cpp"]}


def test_run_success(client: TestClient) -> None:
    response = client.post(
        "/api/run",
        json={"language": "python", "code": "a, b = map(int, input().split())\nprint(a + b)", "input": "2 3"},
    )
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["stdout"] == "5"
    assert body["stderr"] == ""
    assert body["exitCode"] == 0
    assert body["timedOut"] is False
    assert body["compileError"] is False
    assert body["message"] == "Execution success."
    assert body["steps"] == [0, 1]


def test_run_accepts_alternate_field_names(client: TestClient) -> None:
    response = client.post("/api/run", json={"guestLanguage": "python", "sourceText": "print('hi')"})

    assert response.json()["stdout"] == "hi"


def test_run_failure(client: TestClient) -> None:
    body = client.post("/api/run", json={"language": "python", "code": "1 / 0"}).json()

    assert body["success"] is False
    assert "ZeroDivisionError" in body["stderr"]
    assert body["message"] == "Execution failed."


def test_run_unsupported_language(client: TestClient) -> None:
    body = client.post("/api/run", json={"language": "go", "code": "package main"}).json()

    assert body["success"] is False
    assert body["exitCode"] == 1
    assert body["stderr"] == "Unsupported language: go."


def test_run_rejects_missing_language(client: TestClient) -> None:
    assert client.post("/api/run", json={"code": "print(1)"}).status_code == 422


def test_diagnose(client: TestClient) -> None:
    body = client.post("/api/diagnose", json={"language": "python", "code": "x = undefined_name"}).json()

    assert body["success"] is True
    assert body["summary"] == "The program reported an error."
    assert body["steps"] == ["NameError: name 'undefined_name' is not defined"]


def test_diagnose_clean_program(client: TestClient) -> None:
    body = client.post("/api/diagnose", json={"language": "python", "code": "print(1)"}).json()

    assert body["success"] is False
    assert body["summary"] == "No errors detected."
    assert body["fixedCode"] == ""


def test_custom_advisor_output_is_passed_through() -> None:
    class _Advisor:
        def diagnose(self, language: str, stderr: str) -> Diagnosis:
            return Diagnosis(summary="custom", steps=["a"])

        def suggest_code(self, language: str, intent: str) -> str:
            return f"# fixed {language}: {intent}"

        def visualize(self, language: str, code: str) -> Visualization:
            return Visualization(flowchart="flowchart TD", steps=[7], algorithm_steps=["Start"])

    client = TestClient(create_app(EngineSettings(), advisor=_Advisor()))
    body = client.post("/api/run", json={"language": "python", "code": "1 / 0", "intent": "divide"}).json()

    assert body["generatedCode"] == "# fixed python: divide"
    assert body["flowchart"] == "flowchart TD"
    assert body["steps"] == [7]
    assert body["algorithmSteps"] == ["Start"]


def test_trace(client: TestClient) -> None:
    body = client.post("/api/trace", json={"language": "python", "code": "x = 1\nprint(x)"}).json()

    assert body["degraded"] is False
    assert body["finalStdout"] == "1\n"
    assert [step["lineNumber"] for step in body["traceSteps"]] == [1, 2]
    assert body["traceSteps"][1]["variables"] == {"x": "1"}
    assert body["traceSteps"][1]["eventKind"] == "line"


def test_level_submit(client: TestClient) -> None:
    passed = client.post(
        "/api/levels/submit",
        json={"levelId": 2, "language": "python", "code": "a, b = map(int, input().split())\nprint(a + b)"},
    ).json()
    failed = client.post(
        "/api/levels/submit",
        json={"levelId": 2, "language": "python", "code": "print(6)"},
    ).json()

    assert passed == {"passed": True, "message": "Great job! You can move to the next level.", "hint": ""}
    assert failed["passed"] is False
    assert failed["message"] == "Output did not match the expected answer."
    assert failed["hint"] == "Check input handling and output format."


def test_websocket_session(client: TestClient) -> None:
    """Verify an interactive round trip; malformed frames are ignored."""
    events = []
    with client.websocket_connect("/ws/session") as websocket:
        websocket.send_json({"type": "init", "language": "python", "code": "print(input())"})
        websocket.send_text("garbage")
        websocket.send_json({"type": "input", "text": "5\n"})
        while True:
            event = websocket.receive_json()
            events.append(event)
            if event["type"] == "exit":
                break

    assert "".join(event["data"] for event in events if event["type"] == "output") == "5\r\n"
    assert events[-1] == {"type": "exit", "code": 0}

# Tests for models.py: tool-call parsing, file collection, responses.
# Created: 2026-03-02

import json

import pytest

from conftest import write_file
from gemini_bridge.exceptions import MalformedInputError
from gemini_bridge.models import AuthType, BridgeResponse, ProviderDescriptor, ToolCall


class TestParsing:
    def test_bridge_shape(self, project):
        call = ToolCall.from_payload(
            {
                "tool": "Read",
                "parameters": {"file_path": "a.py"},
                "context": {"working_directory": str(project)},
            }
        )
        assert call.tool == "Read"
        assert call.parameters["file_path"] == "a.py"
        assert call.working_directory == project

    def test_native_hook_shape(self, project):
        call = ToolCall.from_payload(
            {"tool_name": "Grep", "tool_input": {"pattern": "TODO"}, "cwd": str(project)}
        )
        assert call.tool == "Grep"
        assert call.parameters["pattern"] == "TODO"
        assert call.working_directory == project

    def test_missing_fields_default(self):
        call = ToolCall.from_payload({})
        assert call.tool == ""
        assert dict(call.parameters) == {}

    def test_non_object_rejected(self):
        with pytest.raises(MalformedInputError):
            ToolCall.from_payload(["Read"])

    def test_invalid_json(self):
        with pytest.raises(MalformedInputError):
            ToolCall.from_json("{not json")

    def test_parameters_are_read_only(self):
        call = ToolCall(tool="Read", parameters={"file_path": "a"})
        with pytest.raises(TypeError):
            call.parameters["file_path"] = "b"

    def test_prompt_text_keys(self):
        assert ToolCall("Task", {"prompt": "do it"}).prompt_text() == "do it"
        assert ToolCall("Task", {"description": "desc"}).prompt_text() == "desc"
        assert ToolCall("Task", {"query": "q"}).prompt_text() == "q"
        assert ToolCall("Read", {"file_path": "x"}).prompt_text() == ""


class TestFilePaths:
    def test_read_relative_path(self, project):
        target = write_file(project / "src" / "a.py", 10)
        call = ToolCall("Read", {"file_path": "src/a.py"}, project)
        assert call.file_paths() == [target.resolve()]

    def test_glob(self, project):
        for name in ("a.py", "b.py", "c.txt"):
            write_file(project / name, 10)
        write_file(project / "pkg" / "d.py", 10)
        call = ToolCall("Glob", {"pattern": "**/*.py"}, project)
        names = sorted(p.name for p in call.file_paths())
        assert names == ["a.py", "b.py", "d.py"]

    def test_glob_with_path(self, project):
        write_file(project / "a.py", 10)
        write_file(project / "sub" / "b.py", 10)
        call = ToolCall("Glob", {"pattern": "*.py", "path": "sub"}, project)
        assert [p.name for p in call.file_paths()] == ["b.py"]

    def test_grep_directory_filtered_and_hidden_skipped(self, project):
        write_file(project / "a.py", 10)
        write_file(project / "b.md", 10)
        write_file(project / ".git" / "c.py", 10)
        call = ToolCall("Grep", {"pattern": "x", "path": str(project), "glob": "*.py"}, project)
        assert [p.name for p in call.file_paths()] == ["a.py"]

    def test_grep_single_file(self, project):
        target = write_file(project / "one.py", 10)
        call = ToolCall("Grep", {"pattern": "x", "path": "one.py"}, project)
        assert call.file_paths() == [target.resolve()]

    def test_file_lists_and_references(self, project):
        call = ToolCall(
            "Task",
            {"files": ["a.py", "b.py"], "prompt": "compare @c.py with @a.py"},
            project,
        )
        names = [p.name for p in call.file_paths()]
        assert names == ["a.py", "b.py", "c.py"]

    def test_email_is_not_a_reference(self, project):
        call = ToolCall("Task", {"prompt": "mail dev@example.com"}, project)
        assert call.file_paths() == []

    def test_deduplicates(self, project):
        write_file(project / "a.py", 10)
        params = {"file_path": "a.py", "files": ["./a.py", str(project / "a.py")]}
        call = ToolCall("Read", params, project)
        assert len(call.file_paths()) == 1


class TestResponses:
    def test_continue(self):
        assert json.loads(BridgeResponse.continue_().to_json()) == {"action": "continue"}

    def test_delegate(self):
        resp = BridgeResponse.delegated("gemini-api", "summary")
        assert resp.to_dict() == {
            "action": "delegate",
            "provider": "gemini-api",
            "result": "summary",
        }

    def test_descriptor_supports(self):
        descriptor = ProviderDescriptor("gemini-cli", AuthType.CLI)
        assert descriptor.supports("Read")
        assert not descriptor.supports("Bash")

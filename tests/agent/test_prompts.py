"""Tests for system prompt construction."""

from __future__ import annotations

from devagent.agent.capabilities import CapabilityRegistry
from devagent.agent.prompts import build_system_prompt, discover_project_docs


class TestBuildSystemPrompt:
    def test_layers_present(self, project) -> None:
        (project / "AGENTS.md").write_text("Always run npm test before committing.")
        prompt = build_system_prompt(
            str(project),
            model_id="test-model",
            capabilities=CapabilityRegistry(),
            user_instructions="Answer in French.",
            transient_dir="scratch",
        )

        assert prompt.startswith("You are an autonomous developer agent")
        assert "scratch/ directory" in prompt
        assert f"Working directory: {project}" in prompt
        assert "Model: test-model" in prompt
        assert "load_capability" in prompt
        assert "Always run npm test before committing." in prompt
        assert prompt.endswith("Operator instructions:\nAnswer in French.")

    def test_without_docs_or_capabilities(self, project) -> None:
        prompt = build_system_prompt(str(project))
        assert "AGENTS.md" not in prompt
        assert "Operator instructions" not in prompt


class TestDiscoverProjectDocs:
    def test_budget_truncates(self, project) -> None:
        (project / "AGENTS.md").write_text("a" * 40_000)
        docs = discover_project_docs(str(project))
        assert "(truncated)" in docs
        assert len(docs) < 40_000

    def test_both_files_read(self, project) -> None:
        (project / "AGENTS.md").write_text("agents")
        (project / "DEVAGENT.md").write_text("devagent")
        docs = discover_project_docs(str(project))
        assert docs.index("agents") < docs.index("devagent")

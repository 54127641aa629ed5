"""Tests for warden.engineer — the patch / verify / rollback sequence."""

import builtins
import json
from unittest.mock import patch

import pytest

from warden.engineer import PatchEngine, branch_name, commit_message, parse_fix, update_dependency
from warden.errors import FixError
from warden.git import GitDriver
from warden.models import Diagnosis


@pytest.fixture
def engine(ctx, runner, project):
    return PatchEngine(ctx, runner, GitDriver(runner, str(project)), str(project))


def _manifest(project):
    return json.loads((project / "package.json").read_text())


def _restore_on_revert(runner, project):
    """Make `git checkout -- .` put package.json back like real git would."""
    original = (project / "package.json").read_text()
    runner.hook("git checkout -- .", lambda cwd: (project / "package.json").write_text(original))
    return original


class TestParsing:
    def test_parse_fix(self):
        assert parse_fix("Update lodash from 4.17.0 to 4.17.21") == ("lodash", "4.17.0", "4.17.21")

    def test_parse_scoped_package(self):
        assert parse_fix("Update @babel/core from 7.0.0 to 7.22.0")[0] == "@babel/core"

    @pytest.mark.parametrize("text", ["", "Bump lodash", "Update lodash to 4.17.21"])
    def test_parse_fix_rejects(self, text):
        assert parse_fix(text) is None

    def test_branch_and_commit_names(self):
        assert branch_name("warden", "lodash") == "warden/fix-lodash"
        assert commit_message("lodash", "SNYK-1") == "fix(lodash): resolve SNYK-1"

    def test_update_dependency_both_sections(self):
        manifest = {"dependencies": {"a": "1"}, "devDependencies": {"a": "1", "b": "2"}}
        assert update_dependency(manifest, "a", "3") == ["dependencies", "devDependencies"]
        assert manifest["dependencies"]["a"] == "3"
        assert manifest["devDependencies"]["a"] == "3"
        assert manifest["devDependencies"]["b"] == "2"


class TestApplyFix:
    def test_success_commits_on_fix_branch(self, engine, runner, project, lodash_diagnosis):
        runner.script("git rev-parse --verify --quiet refs/heads/warden/fix-lodash", (1, "", ""))

        assert engine.apply_fix(lodash_diagnosis) is True

        assert _manifest(project)["dependencies"]["lodash"] == "4.17.21"
        assert runner.commands()[-5:] == [
            "git checkout -b warden/fix-lodash",
            "npm install",
            "npm test",
            "git add -A",
            "git commit -m fix(lodash): resolve SNYK-JS-LODASH-1040724",
        ]

    def test_outcome_reports_branch(self, engine, lodash_diagnosis):
        outcome = engine.apply(lodash_diagnosis)
        assert outcome.success is True
        assert outcome.branch == "warden/fix-lodash"

    def test_manifest_stays_pretty_printed(self, engine, project, lodash_diagnosis):
        engine.apply_fix(lodash_diagnosis)
        text = (project / "package.json").read_text()
        assert text.startswith('{\n  "name": "demo-app"')
        assert text.endswith("}\n")

    def test_verification_failure_rolls_back(self, engine, runner, project, lodash_diagnosis):
        original = _restore_on_revert(runner, project)
        runner.script("npm test", (1, "", "1 failing"))

        assert engine.apply_fix(lodash_diagnosis) is False

        assert (project / "package.json").read_text() == original
        commands = runner.commands()
        assert "git checkout -- ." in commands
        assert "git clean -fd" in commands
        assert not any(c.startswith("git commit") for c in commands)
        assert not any(c.startswith("git add") for c in commands)

    def test_transitive_dependency_not_patched(self, engine, runner, project):
        diagnosis = Diagnosis("V-1", "minimist", "Update minimist from 1.2.5 to 1.2.6")
        before = (project / "package.json").read_text()

        outcome = engine.apply(diagnosis)

        assert outcome.success is False
        assert outcome.reason == "not a direct dependency"
        assert (project / "package.json").read_text() == before
        assert "npm install" not in runner.commands()

    def test_dev_dependency_updated(self, engine, project):
        diagnosis = Diagnosis("V-2", "jest", "Update jest from ^29.0.0 to 29.7.0")
        assert engine.apply_fix(diagnosis) is True
        assert _manifest(project)["devDependencies"]["jest"] == "29.7.0"

    def test_unparseable_directive_returns_false(self, engine, runner):
        diagnosis = Diagnosis("V-3", "?", "please fix lodash")
        assert engine.apply_fix(diagnosis) is False
        assert runner.calls == []

    def test_missing_manifest_raises(self, engine, project, lodash_diagnosis):
        (project / "package.json").unlink()
        with pytest.raises(FixError) as exc:
            engine.apply_fix(lodash_diagnosis)
        assert exc.value.package_name == "lodash"
        assert "package.json not found" in str(exc.value)

    def test_install_failure_raises_after_revert(self, engine, runner, project, lodash_diagnosis):
        original = _restore_on_revert(runner, project)
        runner.script("npm install", (1, "", "ERESOLVE unable to resolve dependency tree"))

        with pytest.raises(FixError) as exc:
            engine.apply_fix(lodash_diagnosis)

        assert "ERESOLVE" in str(exc.value)
        assert (project / "package.json").read_text() == original
        assert "npm test" not in runner.commands()

    def test_checkout_failure_returns_false(self, engine, runner, lodash_diagnosis):
        runner.script("git rev-parse --abbrev-ref HEAD", (128, "", "fatal: not a git repository"))
        outcome = engine.apply(lodash_diagnosis)
        assert outcome.success is False
        assert outcome.reason.startswith("checkout failed")

    def test_commit_failure_returns_false(self, engine, runner, lodash_diagnosis):
        runner.script("git commit -m fix(lodash): resolve SNYK-JS-LODASH-1040724",
                      (1, "", "Author identity unknown"))
        assert engine.apply_fix(lodash_diagnosis) is False


# ---------------------------------------------------------------------------
# Failures at the boundary surface as FixError or a failed outcome
# ---------------------------------------------------------------------------

class TestBoundaryFailures:
    def test_failed_revert_after_verification_returns_false(self, engine, runner, lodash_diagnosis):
        runner.script("npm test", (1, "", "1 failing"))
        runner.script("git clean -fd", (128, "", "fatal: unable to write index"))

        outcome = engine.apply(lodash_diagnosis)

        assert outcome.success is False
        assert outcome.reason.startswith("verification failed; revert failed")
        assert "unable to write index" in outcome.reason
        assert not any(c.startswith("git commit") for c in runner.commands())

    def test_failed_revert_after_install_raises_fix_error(self, engine, runner, lodash_diagnosis):
        runner.script("npm install", (1, "", "ERESOLVE unable to resolve dependency tree"))
        runner.script("git checkout -- .", (128, "", "fatal: index.lock exists"))

        with pytest.raises(FixError) as exc:
            engine.apply_fix(lodash_diagnosis)

        assert "ERESOLVE" in str(exc.value)
        assert "git checkout -- ." in str(exc.value)

    @pytest.mark.parametrize("content", ["[]", "\"lodash\"", "null"])
    def test_non_object_manifest_raises(self, engine, project, lodash_diagnosis, content):
        (project / "package.json").write_text(content)
        with pytest.raises(FixError) as exc:
            engine.apply_fix(lodash_diagnosis)
        assert "JSON object" in str(exc.value)

    def test_unwritable_manifest_raises(self, engine, runner, project, lodash_diagnosis):
        real_open = builtins.open

        def disk_full(path, mode="r", *args, **kwargs):
            if "w" in mode and str(path).endswith("package.json"):
                raise OSError(28, "No space left on device")
            return real_open(path, mode, *args, **kwargs)

        with patch("builtins.open", side_effect=disk_full):
            with pytest.raises(FixError) as exc:
                engine.apply_fix(lodash_diagnosis)

        assert "No space left" in str(exc.value)
        assert "git checkout -- ." in runner.commands()
        assert "npm install" not in runner.commands()

import json
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from ctxdocs import cli

COMPANION = "---\nwhat: Module A\nkeywords:\n  - alpha\n---\n\n# A\n\nHow module A works.\n"


def _main(root: Path, home: Path, *args: str) -> int:
    return cli.main(["--root", str(root), "--home", str(home), *args])


def test_end_to_end_companion_document_lifecycle(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    mocker: MockerFixture,
) -> None:
    root = tmp_path / "repo"
    home = tmp_path / "home"
    (root / "src").mkdir(parents=True)
    (root / "src" / "a.ts").write_text("export const a = 1;\n", encoding="utf-8")
    (root / "src" / "a.ctx.md").write_text(COMPANION, encoding="utf-8")

    assert _main(root, home, "init", ".") == 0
    capsys.readouterr()
    assert _main(root, home, "sync") == 0
    synced = json.loads(capsys.readouterr().out)
    assert synced["synced"] == ["src/a.ctx.md"]

    assert _main(root, home, "check", "--strict") == 0
    capsys.readouterr()

    with (root / "src" / "a.ts").open("a", encoding="utf-8") as fh:
        fh.write("export const b = 2;\n")
    assert _main(root, home, "check", "--strict", "--pretty") == 1
    report = capsys.readouterr().out
    assert "Stale Contexts (target changed):" in report
    assert "src/a.ctx.md" in report

    hook = json.dumps({"tool_name": "Read", "tool_input": {"file_path": str(root / "src" / "a.ts")}})
    mocker.patch.object(cli, "read_stdin", return_value=hook)
    assert _main(root, home, "load", "--pretty") == 0
    injected = capsys.readouterr().out
    assert "**Context loaded:** `src/a.ctx.md` (Project, exact: `src/a.ts`)" in injected
    assert "How module A works." in injected

    (root / "src" / "a.ctx.md").unlink()
    assert _main(root, home, "sync") == 0
    orphaned = json.loads(capsys.readouterr().out)
    assert orphaned["orphaned"] == ["src/a.ctx.md"]

    assert _main(root, home, "remove", "src/a.ctx.md") == 0
    assert _main(root, home, "check", "--strict") == 0


def test_end_to_end_migrate_legacy_layout(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = tmp_path / "old"
    home = tmp_path / "home"
    (root / "ctx" / "architecture").mkdir(parents=True)
    (root / "ctx" / "architecture" / "overview.md").write_text(
        "---\nwhat: Architecture overview\nkeywords: [architecture]\n---\n",
        encoding="utf-8",
    )
    (root / "ctx.config.yaml").write_text("version: 1\n", encoding="utf-8")
    assert _main(root, home, "init") == 0

    assert _main(root, home, "migrate", "--remove-legacy-config", "--remove-legacy-dir") == 0

    capsys.readouterr()
    assert not (root / "ctx").exists()
    assert not (root / "ctx.config.yaml").exists()
    assert _main(root, home, "list", "--paths") == 0
    assert capsys.readouterr().out.splitlines() == [".ctx/contexts/architecture/overview.md"]

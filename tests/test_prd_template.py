from __future__ import annotations

import subprocess
import sys
from datetime import date
from pathlib import Path

import pytest

from scarlet.detector import is_template_path
from scarlet.prd_template import render_prd

REPO_ROOT = Path(__file__).resolve().parents[1]
TEMPLATE = "# PRD: <TITLE>\n\n## Problem\n\n## Requirements\n"


def _repo_with_template(tmp_path: Path) -> Path:
    prd_dir = tmp_path / "docs" / "prd"
    prd_dir.mkdir(parents=True)
    (prd_dir / "PRD_TEMPLATE.md").write_text(TEMPLATE, encoding="utf-8")
    return tmp_path


def test_render_prd_fills_title_and_dates_file(tmp_path: Path) -> None:
    repo = _repo_with_template(tmp_path)

    out = render_prd("Add Widget", repo_root=repo, today=date(2024, 1, 15))

    assert out == repo / "docs" / "prd" / "2024-01-15-add-widget.md"
    assert out.read_text(encoding="utf-8") == "# PRD: Add Widget\n\n## Problem\n\n## Requirements\n"
    assert not is_template_path(out.relative_to(repo).as_posix())


def test_render_prd_refuses_to_overwrite(tmp_path: Path) -> None:
    repo = _repo_with_template(tmp_path)
    render_prd("Add Widget", repo_root=repo, today=date(2024, 1, 15))

    with pytest.raises(FileExistsError):
        render_prd("Add Widget", repo_root=repo, today=date(2024, 1, 15))


def test_render_prd_requires_template(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        render_prd("Add Widget", repo_root=tmp_path)


def test_render_prd_rejects_unsluggable_title(tmp_path: Path) -> None:
    repo = _repo_with_template(tmp_path)
    with pytest.raises(ValueError):
        render_prd("  ***  ", repo_root=repo)


def test_render_prd_script(tmp_path: Path) -> None:
    repo = _repo_with_template(tmp_path)

    result = subprocess.run(
        [sys.executable, str(REPO_ROOT / "scripts" / "render_prd.py"), "Search", "Index", "--repo-root", str(repo)],
        cwd=REPO_ROOT,
        capture_output=True,
        text=True,
        check=False,
    )

    assert result.returncode == 0, result.stderr
    out_path = Path(result.stdout.strip())
    assert out_path.parent == repo / "docs" / "prd"
    assert out_path.name.endswith("-search-index.md")
    assert out_path.read_text(encoding="utf-8").startswith("# PRD: Search Index\n")


def test_render_prd_script_missing_template_fails(tmp_path: Path) -> None:
    result = subprocess.run(
        [sys.executable, str(REPO_ROOT / "scripts" / "render_prd.py"), "Anything", "--repo-root", str(tmp_path)],
        cwd=REPO_ROOT,
        capture_output=True,
        text=True,
        check=False,
    )

    assert result.returncode == 1
    assert "Template not found" in result.stderr

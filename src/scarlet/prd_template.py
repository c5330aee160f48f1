from __future__ import annotations

from datetime import date
from pathlib import Path

from .planner import slugify_name

PRD_DIR = Path("docs") / "prd"
TEMPLATE_NAME = "PRD_TEMPLATE.md"
TITLE_PLACEHOLDER = "# PRD: <TITLE>"


def render_prd(title: str, *, repo_root: Path, today: date | None = None) -> Path:
    """Create ``docs/prd/YYYY-MM-DD-<slug>.md`` from the repository's PRD template.

    The template's ``# PRD: <TITLE>`` heading is replaced with the given title; the
    rest of the template is copied verbatim.  The file name carries no ``TEMPLATE``
    marker, so the new document is picked up by the next poll cycle once committed.

    Args:
        title: Human-readable PRD title.
        repo_root: Root of the repository holding ``docs/prd/PRD_TEMPLATE.md``.
        today: Date used for the file name prefix (defaults to the local date).

    Returns:
        Path of the written document.

    Raises:
        ValueError: If the title is blank or slugs to nothing.
        FileNotFoundError: If the template is missing.
        FileExistsError: If a document with the same name already exists.
    """
    cleaned = title.strip()
    slug = slugify_name(cleaned)
    if not slug:
        raise ValueError("PRD title must contain at least one letter or digit")

    template_path = repo_root / PRD_DIR / TEMPLATE_NAME
    if not template_path.is_file():
        raise FileNotFoundError(f"Template not found: {template_path}")

    day = today if today is not None else date.today()
    out_path = repo_root / PRD_DIR / f"{day.isoformat()}-{slug}.md"
    if out_path.exists():
        raise FileExistsError(f"PRD already exists: {out_path}")

    template = template_path.read_text(encoding="utf-8")
    out_path.write_text(template.replace(TITLE_PLACEHOLDER, f"# PRD: {cleaned}", 1), encoding="utf-8")
    return out_path

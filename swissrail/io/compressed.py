from __future__ import annotations

from pathlib import Path
from zipfile import ZipFile


def extract_member(zip_path: Path, member_name: str, out_path: Path) -> Path:
    """Extract the single member of `zip_path` whose basename is `member_name` to `out_path`.

    The monthly actual-data archives hold one CSV per operating day; this pulls
    out exactly one of them.
    """
    zip_path = Path(zip_path)
    out_path = Path(out_path)
    if not zip_path.exists():
        raise FileNotFoundError(f"Missing archive: {zip_path}")

    out_path.parent.mkdir(parents=True, exist_ok=True)

    with ZipFile(zip_path) as zf:
        files = [n for n in zf.namelist() if n and not n.endswith("/")]
        if not files:
            raise ValueError(f"Zip contains no files: {zip_path}")

        matches = [n for n in files if Path(n).name == member_name]
        if len(matches) != 1:
            raise ValueError(f"Zip {zip_path} must contain exactly one file named {member_name!r}.")
        member = matches[0]

        # Extract then move into the expected target path.
        extracted = Path(zf.extract(member, out_path.parent))
        extracted.replace(out_path)

    if not out_path.exists() or out_path.stat().st_size <= 0:
        raise RuntimeError(f"Extraction failed: {zip_path} -> {out_path}")
    return out_path


def ensure_unzipped(path: Path) -> Path:
    """Ensure `path` exists, extracting `path + ".zip"` into place if needed.

    - if `path` exists, return it
    - else require `path + ".zip"`
    - zip must contain exactly one file whose basename matches `path.name`
    """
    path = Path(path)
    if path.exists():
        return path

    zip_path = path.with_suffix(path.suffix + ".zip")
    if not zip_path.exists():
        raise FileNotFoundError(f"Missing required file: {path} (or zipped: {zip_path})")
    return extract_member(zip_path, path.name, path)

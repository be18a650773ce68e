"""
Writing generated files.

All writes go through a temporary file in the destination directory that is
renamed over the target once it is complete, so an interrupted build never
leaves a truncated page or stylesheet behind.
"""

import os
import shutil
import logging
import tempfile
from pathlib import Path
from typing import List, Union

import rjsmin

logger = logging.getLogger('octosite.output')

FILE_MODE = 0o644


def _temporary_sibling(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f'.{path.name}.', suffix='.tmp')
    return fd, tmp_path


def _discard(tmp_path: str):
    try:
        os.unlink(tmp_path)
    except FileNotFoundError:
        pass


def write_output(path, data: Union[str, bytes]) -> Path:
    """
    Atomically write text or bytes to path, creating parent directories.

    Text is written as UTF-8 without newline translation.
    """
    path = Path(path)
    fd, tmp_path = _temporary_sibling(path)
    try:
        if isinstance(data, bytes):
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
        else:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                f.write(data)
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        _discard(tmp_path)
        raise
    return path


def copy_file(source, destination) -> Path:
    """Atomically copy one file, keeping its modification time."""
    destination = Path(destination)
    fd, tmp_path = _temporary_sibling(destination)
    os.close(fd)
    try:
        shutil.copy2(str(source), tmp_path)
        os.replace(tmp_path, destination)
    except BaseException:
        _discard(tmp_path)
        raise
    return destination


def copy_tree(source_dir, destination_dir) -> List[Path]:
    """
    Copy a directory tree verbatim, file by file, in sorted order.

    Returns:
        Destination paths of the copied files
    """
    source_dir = Path(source_dir)
    destination_dir = Path(destination_dir)
    copied = []
    for current, dirs, files in os.walk(source_dir):
        dirs.sort()
        rel_dir = Path(current).relative_to(source_dir)
        for name in sorted(files):
            copied.append(copy_file(Path(current) / name, destination_dir / rel_dir / name))
    logger.debug(f"Copied {len(copied)} files from {source_dir} to {destination_dir}")
    return copied


def minify_javascripts(directory) -> int:
    """Minify every .js file under directory in place. Returns the number minified."""
    count = 0
    for current, dirs, files in os.walk(directory):
        dirs.sort()
        for name in sorted(files):
            if not name.endswith('.js') or name.endswith('.min.js'):
                continue
            js_path = Path(current) / name
            with open(js_path, 'r', encoding='utf-8') as f:
                js_content = f.read()
            write_output(js_path, rjsmin.jsmin(js_content))
            logger.debug(f"Minified JS: {js_path}")
            count += 1
    return count

"""
Filesystem and zip output.

Everything is written into a staging directory next to the destination
and only moved into place once the whole package (and archive) exists,
so a failed run never leaves something that looks like a valid package.
"""

import os
import shutil
import tempfile
import zipfile

from mdepub.errors import FileIOError
from mdepub.package import MIMETYPE


# Fixed entry timestamp so identical packages zip to identical bytes
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def write_tree(package, directory):
    """Write generated files and copy assets under directory."""
    for rel_path, content in package.files.items():
        path = os.path.join(directory, *rel_path.split("/"))
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
        except OSError as e:
            raise FileIOError(path, e.strerror or e) from e

    for rel_path, source in package.copies.items():
        path = os.path.join(directory, *rel_path.split("/"))
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            shutil.copyfile(source, path)
        except OSError as e:
            raise FileIOError(source, e.strerror or e) from e


def zip_archiver(tree_dir, epub_path, date_time=ZIP_EPOCH):
    """Zip a package tree. Mimetype must be first and uncompressed."""
    with zipfile.ZipFile(epub_path, "w", zipfile.ZIP_DEFLATED) as zout:
        mimetype_path = os.path.join(tree_dir, "mimetype")
        with open(mimetype_path, "rb") as f:
            info = zipfile.ZipInfo("mimetype", date_time=date_time)
            info.compress_type = zipfile.ZIP_STORED
            zout.writestr(info, f.read())

        entries = []
        for root, dirs, files in os.walk(tree_dir):
            for fname in files:
                full_path = os.path.join(root, fname)
                arc_name = os.path.relpath(full_path, tree_dir).replace(os.sep, "/")
                if arc_name != "mimetype":
                    entries.append((arc_name, full_path))

        for arc_name, full_path in sorted(entries):
            with open(full_path, "rb") as f:
                info = zipfile.ZipInfo(arc_name, date_time=date_time)
                info.compress_type = zipfile.ZIP_DEFLATED
                zout.writestr(info, f.read())


def is_package_tree(path):
    """True if path looks like a package directory written by publish()."""
    mimetype = os.path.join(path, "mimetype")
    container = os.path.join(path, "META-INF", "container.xml")
    if not (os.path.isfile(mimetype) and os.path.isfile(container)):
        return False
    try:
        with open(mimetype, encoding="utf-8") as f:
            return f.read() == MIMETYPE
    except (OSError, UnicodeDecodeError):
        return False


def _check_tree_target(tree_path, protect):
    """Refuse to replace anything that is not an earlier package tree."""
    target = os.path.realpath(tree_path)
    for path in protect:
        path = os.path.realpath(path)
        if path == target or path.startswith(target + os.sep):
            raise FileIOError(tree_path, f"would overwrite input {path}")

    if not os.path.lexists(tree_path):
        return
    if os.path.islink(tree_path) or not is_package_tree(tree_path):
        raise FileIOError(
            tree_path,
            "exists and is not a package directory (choose another --prefix or --output-dir)",
        )


def publish(package, output_dir, name, archiver=zip_archiver, save=False, protect=()):
    """
    Write the package to output_dir.

    Args:
        package:    assembled Package
        output_dir: destination directory (created if needed)
        name:       base name for <name>.epub and the <name>/ tree
        archiver:   callable(tree_dir, epub_path), or None when archiving
                    is unavailable (the tree is then the final output)
        save:       keep the <name>/ tree next to the archive
        protect:    input paths the <name>/ tree must never replace

    An existing <name>/ is only replaced when it is a package tree from an
    earlier run; anything else raises FileIOError before a file is written.

    Returns: dict with "epub" and "directory" paths (None if not produced).
    """
    epub_path = os.path.join(output_dir, f"{name}.epub")
    tree_path = os.path.join(output_dir, name)
    keep_tree = archiver is None or save

    if keep_tree:
        _check_tree_target(tree_path, protect)

    try:
        os.makedirs(output_dir, exist_ok=True)
        staging = tempfile.mkdtemp(prefix=f".{name}.", dir=output_dir)
    except OSError as e:
        raise FileIOError(output_dir, e.strerror or e) from e

    result = {"epub": None, "directory": None}

    try:
        staged_tree = os.path.join(staging, name)
        write_tree(package, staged_tree)

        staged_epub = None
        if archiver is not None:
            staged_epub = os.path.join(staging, f"{name}.epub")
            try:
                archiver(staged_tree, staged_epub)
            except OSError as e:
                raise FileIOError(staged_epub, e.strerror or e) from e

        # ── Promote ────────────────────────────────────────
        try:
            if staged_epub:
                os.replace(staged_epub, epub_path)
                result["epub"] = epub_path

            if keep_tree:
                if os.path.isdir(tree_path):
                    shutil.rmtree(tree_path)
                os.replace(staged_tree, tree_path)
                result["directory"] = tree_path
        except OSError as e:
            raise FileIOError(output_dir, e.strerror or e) from e

        return result

    finally:
        shutil.rmtree(staging, ignore_errors=True)

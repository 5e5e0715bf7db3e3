"""
Optional EPUB validation via epubcheck.

Locates epubcheck (env var, PATH, or ~/epubcheck*/), runs it on a built
archive, and prints its message summary.
"""

import os
import re
import shutil
import subprocess


SUMMARY_RE = re.compile(r"Messages:\s*(\d+)\s*fatal.*?(\d+)\s*error.*?(\d+)\s*warn")


def find_epubcheck():
    """
    Locate epubcheck. Checks in order:
        1. EPUBCHECK_JAR environment variable
        2. epubcheck command on PATH (brew/apt install)
        3. ~/epubcheck*/epubcheck.jar

    Returns: list command prefix, or None.
    """
    env_jar = os.environ.get("EPUBCHECK_JAR")
    if env_jar and os.path.exists(env_jar):
        return ["java", "-jar", env_jar]

    if shutil.which("epubcheck"):
        return ["epubcheck"]

    home = os.path.expanduser("~")
    if os.path.isdir(home):
        for entry in sorted(os.listdir(home), reverse=True):
            if entry.startswith("epubcheck"):
                jar = os.path.join(home, entry, "epubcheck.jar")
                if os.path.exists(jar):
                    return ["java", "-jar", jar]

    return None


def parse_summary(output):
    """(fatals, errors, warnings) from epubcheck's output, or None."""
    match = SUMMARY_RE.search(output)
    if not match:
        return None
    return tuple(int(n) for n in match.groups())


def validate_epub(epub_path, verbose=False):
    """
    Run epubcheck on an epub file.

    Returns:
        True if valid, False if errors, None if epubcheck unavailable.
    """
    command = find_epubcheck()

    if command is None:
        if verbose:
            print("  Skipping validation: epubcheck not found")
            print("  Install: brew install epubcheck  (or set EPUBCHECK_JAR)")
        return None

    try:
        result = subprocess.run(command + [epub_path], capture_output=True, text=True)
    except FileNotFoundError:
        print("  Warning: Could not run epubcheck (java not found?)")
        return None

    output = result.stdout + result.stderr
    summary = parse_summary(output)

    if summary:
        fatals, errors, warnings = summary
        if fatals == 0 and errors == 0 and warnings == 0:
            print("  ✓ epubcheck: valid (no errors, no warnings)")
        elif fatals == 0 and errors == 0:
            print(f"  ⚠ epubcheck: valid with {warnings} warning(s)")
        else:
            print(f"  ✗ epubcheck: {fatals} fatal, {errors} error(s), {warnings} warning(s)")
    elif result.returncode == 0:
        print("  ✓ epubcheck: valid")
    else:
        print(f"  ✗ epubcheck: failed (exit code {result.returncode})")

    if verbose or result.returncode != 0:
        for line in output.splitlines():
            if line.startswith(("ERROR", "WARNING", "FATAL")):
                print(f"    {line}")

    return result.returncode == 0

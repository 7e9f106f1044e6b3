"""Test file parser.

Turns ``.bats``-style text into a ``TestFile``::

    setup() {
      export DATA="$BASHTAP_TEST_TMPDIR/data"
    }

    @test "addition works" {
      run expr 1 + 1
      [ "$output" = 2 ]
    }

Test declarations are ``@test "<description>" {`` followed by body lines
and a closing ``}`` line indented no deeper than the declaration (or the
one-line form ``@test "d" { cmd; }``).  Hooks are ordinary shell functions
named ``setup``, ``teardown``, ``setup_file`` or ``teardown_file``.

The translated source keeps every line where it was: each ``@test`` header
is replaced in place by ``bashtap_test_<index>() {``, so shell line numbers
point straight back into the original file.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from bashtap.errors import ParseError
from bashtap.execution.executable import ShellExecutable
from bashtap.model import Diagnostic, FileError, Hook, TestCase, TestFile

log = logging.getLogger(__name__)

_TEST_RE = re.compile(r"^(?P<indent>[ \t]*)@test(?=\s|$)(?P<rest>.*)$")
_HOOK_NAME = (
    r"(?:function[ \t]+(?P<fname>setup_file|teardown_file|setup|teardown)(?:[ \t]*\([ \t]*\))?"
    r"|(?P<name>setup_file|teardown_file|setup|teardown)[ \t]*\([ \t]*\))"
)
_HOOK_RE = re.compile(r"^(?P<indent>[ \t]*)" + _HOOK_NAME + r"[ \t]*\{(?P<rest>.*)$")
# A hook header whose "{" is on a later line
_HOOK_HEADER_RE = re.compile(r"^(?P<indent>[ \t]*)" + _HOOK_NAME + r"[ \t]*(?:#.*)?$")
_OPEN_RE = re.compile(r"^[ \t]*\{(?P<rest>.*)$")
_CLOSE_RE = re.compile(r"^(?P<indent>[ \t]*)\}[ \t]*(?:;[ \t]*)?(?:#.*)?$")

TEST_FUNCTION_PREFIX = "bashtap_test_"


def _indent_width(indent: str) -> int:
    return len(indent.expandtabs(8))


def _parse_description(rest: str, path: Path | None, lineno: int) -> tuple[str, str]:
    """Split ``"desc" { tail`` into the description and the text after ``{``.

    Raises:
        ParseError: If the description is missing or unterminated, or no
            ``{`` follows it.
    """
    text = rest.lstrip()
    if not text or text[0] not in "\"'":
        raise ParseError("missing test description", path, lineno)

    quote = text[0]
    chars: list[str] = []
    i = 1
    while i < len(text):
        c = text[i]
        if quote == '"' and c == "\\" and i + 1 < len(text) and text[i + 1] in '"\\$`':
            chars.append(text[i + 1])
            i += 2
            continue
        if c == quote:
            break
        chars.append(c)
        i += 1
    else:
        raise ParseError("unterminated test description", path, lineno)

    description = "".join(chars)
    if not description.strip():
        raise ParseError("missing test description", path, lineno)

    after = text[i + 1:].lstrip()
    if not after.startswith("{"):
        raise ParseError(f"expected '{{' after test description {description!r}", path, lineno)
    return description, after[1:]


def _is_one_liner(tail: str) -> bool:
    stripped = tail.strip()
    return stripped.endswith("}") and stripped != "}" and len(stripped) > 1


def _find_open(lines: list[str], header: int, path: Path | None) -> tuple[int, str]:
    """Find the "{" line that opens the function declared at ``header``.

    Blank lines may sit between the two.

    Raises:
        ParseError: If anything else follows the header.
    """
    i = header + 1
    while i < len(lines) and not lines[i].strip():
        i += 1
    match = _OPEN_RE.match(lines[i]) if i < len(lines) else None
    if match is None:
        raise ParseError("expected '{' after function header", path, header + 1)
    return i, match.group("rest")


def _find_close(
    lines: list[str],
    start: int,
    indent: str,
    path: Path | None,
    what: str,
    lineno: int | None = None,
) -> int:
    """Return the index of the line closing the block opened at ``start``.

    Errors are reported at ``lineno``, or at ``start`` when it is not given.

    Raises:
        ParseError: If the file ends, or another declaration starts, before
            a closing line is found.
    """
    width = _indent_width(indent)
    for i in range(start + 1, len(lines)):
        line = lines[i]
        match = _CLOSE_RE.match(line)
        if match and _indent_width(match.group("indent")) <= width:
            return i
        if _TEST_RE.match(line):
            break
        hook = _HOOK_RE.match(line) or _HOOK_HEADER_RE.match(line)
        if hook and _indent_width(hook.group("indent")) <= width:
            break
    raise ParseError(f"unterminated body of {what}", path, lineno or start + 1)


def parse_text(text: str, path: Path | str | None = None) -> TestFile:
    """Parse test file text into a ``TestFile``.

    Args:
        text: File contents.
        path: File path used for diagnostics and the resulting ``TestFile``.

    Returns:
        TestFile with tests in declaration order and the translated source.

    Raises:
        ParseError: On a malformed declaration.
    """
    file_path = Path(path) if path is not None else Path("<string>")
    lines = text.split("\n")
    translated = list(lines)
    tests: list[TestCase] = []
    hooks: dict[str, Hook] = {}

    i = 0
    while i < len(lines):
        line = lines[i]
        lineno = i + 1

        test_match = _TEST_RE.match(line)
        if test_match:
            description, tail = _parse_description(test_match.group("rest"), file_path, lineno)
            index = len(tests) + 1
            function = f"{TEST_FUNCTION_PREFIX}{index}"
            translated[i] = f"{test_match.group('indent')}{function}() {{{tail}"
            tests.append(TestCase(
                description=description,
                index=index,
                body=ShellExecutable(function, line=lineno),
                line=lineno,
            ))
            if _is_one_liner(tail):
                i += 1
            else:
                i = _find_close(lines, i, test_match.group("indent"), file_path,
                                f"test {description!r}") + 1
            continue

        hook_match = _HOOK_RE.match(line)
        if hook_match:
            open_index, rest = i, hook_match.group("rest")
        else:
            hook_match = _HOOK_HEADER_RE.match(line)
            if hook_match:
                open_index, rest = _find_open(lines, i, file_path)
        if hook_match:
            scope = hook_match.group("name") or hook_match.group("fname")
            if scope in hooks:
                log.debug("%s:%d: %s redefined", file_path, lineno, scope)
            hooks[scope] = Hook(scope=scope, body=ShellExecutable(scope, line=lineno), line=lineno)
            if _is_one_liner(rest):
                i = open_index + 1
            else:
                i = _find_close(lines, open_index, hook_match.group("indent"), file_path, scope,
                                lineno) + 1
            continue

        i += 1

    return TestFile(
        path=file_path,
        tests=tuple(tests),
        setup=hooks.get("setup"),
        teardown=hooks.get("teardown"),
        setup_file=hooks.get("setup_file"),
        teardown_file=hooks.get("teardown_file"),
        source="\n".join(translated),
    )


def parse_file(path: Path) -> TestFile:
    """Read and parse one test file.

    Raises:
        ParseError: On a malformed declaration or an unreadable file.
    """
    try:
        text = path.read_text(encoding="utf-8", errors="surrogateescape")
    except OSError as e:
        raise ParseError(f"cannot read file: {e.strerror or e}", path) from e
    return parse_text(text, path)


def load_files(paths: list[Path]) -> tuple[list[TestFile], list[FileError]]:
    """Parse every path, collecting parse errors instead of stopping.

    Returns:
        Tuple of (parsed files in input order, file errors).
    """
    files: list[TestFile] = []
    errors: list[FileError] = []
    for path in paths:
        try:
            files.append(parse_file(path))
        except ParseError as e:
            log.debug("parse error: %s", e)
            errors.append(FileError(
                path=path,
                diagnostic=Diagnostic(
                    kind="ParseError",
                    message=e.message,
                    file=str(path),
                    line=e.line,
                ),
            ))
    return files, errors

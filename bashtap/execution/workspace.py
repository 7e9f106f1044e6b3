"""Run-scoped temporary directory layout.

::

    <run dir>/
        prelude.bash          helpers sourced by every shell invocation
        driver.bash           runs one function from a translated file
        file-<n>/             BASHTAP_FILE_TMPDIR for the n-th test file
            test.bash         translated test file
            test-<index>/     BASHTAP_TEST_TMPDIR for one test
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path

from bashtap.execution.context import Context
from bashtap.model import ExecutionPlan, TestCase, TestFile

log = logging.getLogger(__name__)

PRELUDE = r"""# bashtap runtime helpers.

run() {
  local _bashtap_expected=""
  case "${1:-}" in
    -[0-9]*) _bashtap_expected="${1#-}"; shift ;;
    '!') _bashtap_expected='!'; shift ;;
    --) shift ;;
  esac
  local _bashtap_flags="$-"
  set +eET
  status=0
  output="$("$@" 2>&1)" || status=$?
  lines=()
  if [[ -n "$output" ]]; then
    mapfile -t lines <<< "$output"
  fi
  if [[ "$_bashtap_flags" == *E* ]]; then set -E; fi
  if [[ "$_bashtap_flags" == *T* ]]; then set -T; fi
  if [[ "$_bashtap_flags" == *e* ]]; then set -e; fi
  if [[ "$_bashtap_expected" == '!' ]]; then
    if [[ "$status" -eq 0 ]]; then
      printf 'Expected non-zero exit status, got 0\n' >&2
      return 1
    fi
  elif [[ -n "$_bashtap_expected" && "$status" -ne "$_bashtap_expected" ]]; then
    printf 'Expected exit status %s, got %s\n' "$_bashtap_expected" "$status" >&2
    return 1
  fi
  return 0
}

skip() {
  printf '%s' "${1:-}" > "$BASHTAP_SKIP_FILE"
  exit 0
}

fail() {
  if (( $# )); then
    printf '%s\n' "$*" >&2
  fi
  return 1
}

load() {
  local _bashtap_path="$1"
  if [[ "$_bashtap_path" != /* ]]; then
    _bashtap_path="$BASHTAP_TEST_DIRNAME/$_bashtap_path"
  fi
  if [[ -f "$_bashtap_path.bash" ]]; then
    _bashtap_path="$_bashtap_path.bash"
  fi
  if [[ ! -f "$_bashtap_path" ]]; then
    printf 'bashtap: %s does not exist\n' "$_bashtap_path" >&2
    exit 1
  fi
  source "$_bashtap_path"
}

_bashtap_dump_env() {
  env -0 > "$BASHTAP_ENV_FILE"
}

_bashtap_on_err() {
  if [[ ! -s "$BASHTAP_DIAG_FILE" ]]; then
    printf '%s\t%s\t%s\t%s' "$1" "$2" "$3" "$4" > "$BASHTAP_DIAG_FILE"
  fi
}
"""

DRIVER = r"""# usage: driver.bash <translated test file> <function>
_bashtap_script="$1"
_bashtap_function="$2"
shift 2
source "$BASHTAP_PRELUDE"
set -a
source "$_bashtap_script"
trap _bashtap_dump_env EXIT
set -eET
trap '_bashtap_on_err "$?" "${BASH_SOURCE[0]:-}" "$LINENO" "$BASH_COMMAND"' ERR
"$_bashtap_function"
trap - ERR
set +eET
"""


class Workspace:
    """Creates and removes the temporary directories of one run."""

    def __init__(self, plan: ExecutionPlan, keep: bool = False) -> None:
        self.plan = plan
        self.keep = keep
        self.root: Path | None = None
        self._file_count = 0
        self._lock = threading.Lock()

    def __enter__(self) -> Workspace:
        self.root = Path(tempfile.mkdtemp(prefix="bashtap-run-"))
        (self.root / "prelude.bash").write_text(PRELUDE)
        (self.root / "driver.bash").write_text(DRIVER)
        log.debug("workspace created at %s", self.root)
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.root is None:
            return
        if self.keep:
            log.info("keeping workspace %s", self.root)
        else:
            shutil.rmtree(self.root, ignore_errors=True)
        self.root = None

    @property
    def prelude(self) -> Path:
        assert self.root is not None
        return self.root / "prelude.bash"

    @property
    def driver(self) -> Path:
        assert self.root is not None
        return self.root / "driver.bash"

    def file_context(self, test_file: TestFile) -> Context:
        """Create the context shared by a file's setup_file/teardown_file.

        Writes the translated source and seeds the environment every test
        of the file starts from.
        """
        assert self.root is not None
        with self._lock:
            self._file_count += 1
            number = self._file_count
        file_dir = self.root / f"file-{number}"
        file_dir.mkdir()
        script = file_dir / "test.bash"
        script.write_text(test_file.source)

        path = test_file.path.resolve()
        environment = dict(os.environ)
        environment.update({
            "BASHTAP_RUN_TMPDIR": str(self.root),
            "BASHTAP_FILE_TMPDIR": str(file_dir),
            "BASHTAP_TEST_FILENAME": str(path),
            "BASHTAP_TEST_DIRNAME": str(path.parent),
            "BASHTAP_PRELUDE": str(self.prelude),
        })
        return Context(
            file=test_file.path,
            index=0,
            environment=environment,
            cwd=Path.cwd(),
            tmpdir=file_dir,
            script=script,
            driver=self.driver,
            timeout=self.plan.timeout,
            shell=self.plan.shell,
        )

    def test_context(self, file_context: Context, case: TestCase) -> Context:
        """Create a private context for one test from its file's context."""
        tmpdir = file_context.tmpdir / f"test-{case.index}"
        tmpdir.mkdir()
        environment = dict(file_context.environment)
        environment.update({
            "BASHTAP_TEST_NAME": f"bashtap_test_{case.index}",
            "BASHTAP_TEST_DESCRIPTION": case.description,
            "BASHTAP_TEST_NUMBER": str(case.index),
            "BASHTAP_TEST_TMPDIR": str(tmpdir),
        })
        return Context(
            file=file_context.file,
            index=case.index,
            description=case.description,
            environment=environment,
            cwd=file_context.cwd,
            tmpdir=tmpdir,
            script=file_context.script,
            driver=file_context.driver,
            timeout=file_context.timeout,
            shell=file_context.shell,
        )

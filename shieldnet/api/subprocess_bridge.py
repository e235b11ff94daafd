"""
JSON-in / JSON-out bridge to external scripts

The prover, the proof-to-calldata transform and the relayer's broadcaster
are TypeScript tools. Each one reads a JSON object on stdin and prints a JSON
object as the last line of stdout. Nothing here retries: a failed call is
reported to the caller with the tool's own message.
"""
import json
import shlex
import subprocess
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from shieldnet import config
from shieldnet.api.logging_config import get_logger

logger = get_logger("subprocess")


def run_json_script(
    cmd: List[str],
    payload: Dict[str, Any],
    timeout: float = 60,
    cwd: Optional[Path] = None,
    description: str = "Script",
    error_cls: Type[Exception] = RuntimeError,
) -> Dict[str, Any]:
    """
    Run a script that takes and returns JSON.

    Args:
        cmd: Command list (e.g., ["npx", "tsx", "scripts/prove.ts", "unshield"])
        payload: Object written to stdin
        timeout: Command timeout in seconds
        cwd: Working directory (default: repository root)
        description: Human-readable description for logs and errors
        error_cls: Exception type raised on any failure

    Returns:
        Parsed JSON object from the last stdout line

    Raises:
        error_cls: non-zero exit, timeout, missing executable or non-JSON output
    """
    printable = " ".join(shlex.quote(x) for x in cmd)
    logger.debug(f"$ {printable}")
    start = time.time()
    try:
        result = subprocess.run(
            cmd,
            input=json.dumps(payload),
            cwd=cwd or config.REPO_ROOT,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise error_cls(f"{description} timed out after {timeout}s") from e
    except OSError as e:
        raise error_cls(f"{description} could not start: {e}") from e

    out = (result.stdout or "").strip()
    err = (result.stderr or "").strip()
    if result.returncode != 0:
        raise error_cls(f"{description} failed with exit code {result.returncode}: {err[:500] or out[:500]}")

    # progress lines may precede the JSON result
    last = out.splitlines()[-1] if out else ""
    try:
        data = json.loads(last)
    except json.JSONDecodeError as e:
        raise error_cls(f"{description} returned non-JSON output: {last[:200]!r}") from e
    if not isinstance(data, dict):
        raise error_cls(f"{description} returned {type(data).__name__}, expected an object")

    logger.info(f"{description} finished in {time.time() - start:.1f}s")
    return data

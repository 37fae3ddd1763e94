"""Resolve the execution node a job's tunnel connects to."""

from __future__ import annotations

import logging
import subprocess

logger = logging.getLogger(__name__)


def parse_scontrol_fields(text: str) -> dict[str, str]:
    """Parse ``Key=Value`` pairs from one-line ``scontrol show`` output."""
    fields: dict[str, str] = {}
    for item in text.split():
        key, sep, value = item.partition("=")
        if sep:
            fields[key] = value
    return fields


def get_job_nodelist(job_id: str | int) -> str | None:
    """Look up the hostlist expression allocated to a job.

    Parameters
    ----------
    job_id : str | int
        SLURM job id

    Returns
    -------
    str | None
        Hostlist such as ``exec[01-04]``, or None if unknown
    """
    try:
        result = subprocess.run(
            ["scontrol", "show", "job", "-o", str(job_id)],
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        logger.debug("Failed to query scontrol for job %s: %s", job_id, e)
        return None

    if result.returncode != 0:
        logger.debug("scontrol show job %s failed: %s", job_id, result.stderr.strip())
        return None

    fields = parse_scontrol_fields(result.stdout or "")
    nodelist = (fields.get("NodeList") or fields.get("BatchHost") or "").strip()

    if not nodelist or nodelist.lower() == "(null)":
        return None

    return nodelist


def split_nodelist(nodelist: str) -> list[str]:
    """Split a hostlist on commas outside of brackets."""
    parts: list[str] = []
    buf = ""
    depth = 0
    for ch in nodelist:
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            if buf:
                parts.append(buf)
            buf = ""
            continue
        buf += ch
    if buf:
        parts.append(buf)
    return parts


def _expand_range(segment: str) -> list[str]:
    if "-" not in segment:
        return [segment]
    start_str, end_str = segment.split("-", 1)
    width = max(len(start_str), len(end_str))
    try:
        start = int(start_str)
        end = int(end_str)
    except ValueError:
        return [segment]
    step = 1 if end >= start else -1
    return [str(value).zfill(width) for value in range(start, end + step, step)]


def _expand_host_pattern(pattern: str) -> list[str]:
    if "[" not in pattern or "]" not in pattern:
        return [pattern]
    prefix, rest = pattern.split("[", 1)
    inside, suffix = rest.split("]", 1)
    # later bracket groups in the suffix multiply out the earlier ones
    tails = _expand_host_pattern(suffix)
    hosts: list[str] = []
    for segment in inside.split(","):
        segment = segment.strip()
        if not segment:
            continue
        for value in _expand_range(segment):
            hosts.extend(prefix + value + tail for tail in tails)
    return hosts


def expand_nodelist_fallback(nodelist: str) -> list[str]:
    """Expand ``prefix[01-03,07]suffix`` hostlists without SLURM tools.

    Every bracket group in a host pattern is expanded, so
    ``rack[1-2]-n[01-02]`` gives four hosts. Nested brackets are not
    supported.
    """
    results: list[str] = []
    for part in split_nodelist(nodelist):
        part = part.strip()
        if part:
            results.extend(_expand_host_pattern(part))
    return results


def expand_nodelist(nodelist: str) -> list[str]:
    """Expand a hostlist expression into host names.

    Uses ``scontrol show hostnames`` and falls back to a local expansion when
    SLURM tools are unavailable.

    Parameters
    ----------
    nodelist : str
        Hostlist expression

    Returns
    -------
    list[str]
        Host names in allocation order
    """
    if not nodelist:
        return []

    try:
        result = subprocess.run(
            ["scontrol", "show", "hostnames", nodelist],
            check=False,
            capture_output=True,
            text=True,
        )
        if result.returncode == 0:
            hosts = [line.strip() for line in result.stdout.splitlines() if line.strip()]
            if hosts:
                return hosts
    except OSError as e:
        logger.debug("Failed to expand nodelist via scontrol: %s", e)

    return expand_nodelist_fallback(nodelist)


def first_node(nodelist: str | list[str] | tuple[str, ...] | None) -> str | None:
    """Return the first host of an allocation.

    Parameters
    ----------
    nodelist : str | list[str] | tuple[str, ...] | None
        Hostlist expression or already expanded host names

    Returns
    -------
    str | None
        First host, or None for an empty allocation
    """
    if not nodelist:
        return None

    if isinstance(nodelist, (list, tuple)):
        hosts = [str(host).strip() for host in nodelist if str(host).strip()]
    else:
        hosts = expand_nodelist(nodelist.strip())

    return hosts[0] if hosts else None

"""Discover WinRM limits and PowerShell settings of the remote host."""

from __future__ import annotations

import logging
from typing import Optional
from xml.etree import ElementTree

from shellcp import scripts
from shellcp.errors import ChannelError, ProbeError
from shellcp.models.capabilities import (
    CapabilitySnapshot,
    PowerShellSettings,
    ServiceLimits,
    ShellLimits,
    WinRMConfig,
)
from shellcp.providers.channel.base import CommandChannel

logger = logging.getLogger(__name__)

_VERSION_PARTS = (("Major",), ("Minor",), ("Build", "Patch"), ("Revision",))


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ElementTree.Element) -> dict[str, ElementTree.Element]:
    found: dict[str, ElementTree.Element] = {}
    for child in element:
        found.setdefault(_local_name(child.tag), child)
    return found


def _int_field(element: Optional[ElementTree.Element], name: str) -> int:
    if element is None:
        return 0
    child = _children(element).get(name)
    if child is None or child.text is None:
        return 0
    try:
        return int(child.text.strip())
    except ValueError:
        return 0


def _parse_xml(text: str, step: str) -> ElementTree.Element:
    try:
        return ElementTree.fromstring(text.lstrip("\ufeff").strip().encode("utf-8"))
    except ElementTree.ParseError as exc:
        raise ProbeError(f"Couldn't parse {step} output: {exc}", operation="probe") from exc


def parse_powershell_version(text: str) -> str:
    root = _parse_xml(text, "PowerShell version")
    objects = [child for child in root if _local_name(child.tag) == "Object"]
    if _local_name(root.tag) != "Objects" or not objects:
        raise ProbeError("PowerShell version output has no Objects/Object", operation="probe")
    first = objects[0]
    properties = {
        child.get("Name", ""): (child.text or "").strip()
        for child in first
        if _local_name(child.tag) == "Property"
    }
    if not properties:
        return (first.text or "").strip()
    parts = []
    for candidates in _VERSION_PARTS:
        value = next((properties[name] for name in candidates if name in properties), "")
        try:
            number = int(value)
        except ValueError:
            continue
        if number >= 0:
            parts.append(str(number))
    return ".".join(parts)


def parse_winrm_config(text: str) -> WinRMConfig:
    root = _parse_xml(text, "WinRM config")
    if _local_name(root.tag) != "Config":
        raise ProbeError(
            f"Unexpected WinRM config root element: {_local_name(root.tag)}",
            operation="probe",
        )
    sections = _children(root)
    service = sections.get("Service")
    winrs = sections.get("Winrs")
    return WinRMConfig(
        max_envelope_size_kb=_int_field(root, "MaxEnvelopeSizekb"),
        max_timeout_ms=_int_field(root, "MaxTimeoutms"),
        service=ServiceLimits(
            max_connections=_int_field(service, "MaxConnections"),
            max_concurrent_operations=_int_field(service, "MaxConcurrentOperations"),
            max_concurrent_operations_per_user=_int_field(
                service, "MaxConcurrentOperationsPerUser"
            ),
        ),
        winrs=ShellLimits(
            max_memory_per_shell_mb=_int_field(winrs, "MaxMemoryPerShellMB"),
            max_shells_per_user=_int_field(winrs, "MaxShellsPerUser"),
            max_concurrent_users=_int_field(winrs, "MaxConcurrentUsers"),
            max_processes_per_shell=_int_field(winrs, "MaxProcessesPerShell"),
        ),
    )


def _run_step(channel: CommandChannel, command: str, step: str, debug: bool) -> str:
    try:
        with channel.shell() as shell:
            result = shell.run(command)
    except ChannelError as exc:
        raise ProbeError(f"Couldn't execute {step} probe: {exc}", operation="probe") from exc
    if result.stderr and debug:
        logger.warning("STDERR returned by %s probe: %s", step, result.stderr.strip())
    if not result.ok:
        raise ProbeError(
            f"{step} probe exited with {result.exit_code}", operation="probe"
        )
    return result.stdout


def probe(channel: CommandChannel, *, debug: bool = False) -> CapabilitySnapshot:
    """Fetch the capability snapshot, one transient shell per step.

    Empty stdout for a step leaves its fields at their zero values.
    """

    version = ""
    stdout = _run_step(channel, scripts.PS_VERSION_COMMAND, "version", debug)
    if stdout.strip():
        version = parse_powershell_version(stdout)

    policy = ""
    stdout = _run_step(channel, scripts.EXECUTION_POLICY_COMMAND, "execution policy", debug)
    if stdout:
        policy = stdout.rstrip("\r\n")

    winrm = WinRMConfig()
    stdout = _run_step(channel, scripts.WINRM_CONFIG_COMMAND, "winrm config", debug)
    if stdout.strip():
        winrm = parse_winrm_config(stdout)

    snapshot = CapabilitySnapshot(
        winrm=winrm,
        powershell=PowerShellSettings(version=version, execution_policy=policy),
    )
    logger.debug("Probed capabilities: %s", snapshot)
    return snapshot

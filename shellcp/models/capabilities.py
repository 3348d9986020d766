"""Resource limits and scripting environment reported by the remote host."""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class ServiceLimits:
    max_connections: int = 0
    max_concurrent_operations: int = 0
    max_concurrent_operations_per_user: int = 0


@dataclass(frozen=True)
class ShellLimits:
    max_memory_per_shell_mb: int = 0
    max_shells_per_user: int = 0
    max_concurrent_users: int = 0
    max_processes_per_shell: int = 0


@dataclass(frozen=True)
class WinRMConfig:
    max_envelope_size_kb: int = 0
    max_timeout_ms: int = 0
    service: ServiceLimits = field(default_factory=ServiceLimits)
    winrs: ShellLimits = field(default_factory=ShellLimits)


@dataclass(frozen=True)
class PowerShellSettings:
    version: str = ""
    execution_policy: str = ""


@dataclass(frozen=True)
class CapabilitySnapshot:
    """Limits fetched once per session.

    Every field has a zero value ("" or 0) meaning "not reported". Consumers
    decide how to treat a missing limit; nothing here raises on absence.
    """

    winrm: WinRMConfig = field(default_factory=WinRMConfig)
    powershell: PowerShellSettings = field(default_factory=PowerShellSettings)

    # WinRM's own defaults on Server 2012 and later.
    CONSERVATIVE_ENVELOPE_KB = 150
    CONSERVATIVE_TIMEOUT_MS = 60_000
    CONSERVATIVE_SHELLS_PER_USER = 5

    @property
    def envelope_budget(self) -> int:
        return self.winrm.max_envelope_size_kb * 1024

    @property
    def operation_timeout_s(self) -> float | None:
        if self.winrm.max_timeout_ms <= 0:
            return None
        return self.winrm.max_timeout_ms / 1000.0

    def concurrency_limit(self, cap: int | None = None) -> int:
        candidates = [
            self.winrm.service.max_concurrent_operations_per_user,
            self.winrm.winrs.max_shells_per_user,
        ]
        if cap is not None:
            candidates.append(cap)
        positive = [value for value in candidates if value > 0]
        if not positive:
            return 1
        return max(1, min(positive))

    def with_envelope_default(self, envelope_kb: int) -> CapabilitySnapshot:
        if self.winrm.max_envelope_size_kb > 0:
            return self
        return replace(
            self, winrm=replace(self.winrm, max_envelope_size_kb=envelope_kb)
        )

    @classmethod
    def conservative(cls) -> CapabilitySnapshot:
        return cls(
            winrm=WinRMConfig(
                max_envelope_size_kb=cls.CONSERVATIVE_ENVELOPE_KB,
                max_timeout_ms=cls.CONSERVATIVE_TIMEOUT_MS,
                winrs=ShellLimits(max_shells_per_user=cls.CONSERVATIVE_SHELLS_PER_USER),
            )
        )

"""Command text sent over the channel.

Every script is wrapped in ``powershell -Command "..."``, so no script may
contain a double quote. Strings are embedded as single-quoted PowerShell
literals with embedded single quotes doubled. Binary payloads travel as
standard base64 (RFC 4648, ``+/`` alphabet, ``=`` padding, no line breaks) and
are decoded remotely by ``[System.Convert]::FromBase64String``.
"""

from __future__ import annotations

import base64
import re

TEMP_SUFFIX = ".shellcp-tmp"

# Bytes reserved in every envelope for the SOAP headers and the script
# wrapper around the payload.
COMMAND_OVERHEAD = 2048

# base64 turns every 3 input bytes into 4 output characters.
ENCODED_CHARS = 4
RAW_BYTES = 3

# Exit codes of the transfer scripts; all of them are permanent failures.
EXIT_IS_DIRECTORY = 2
EXIT_OFFSET_MISMATCH = 3
EXIT_MISSING_TEMP = 4

PS_VERSION_COMMAND = (
    'powershell -NoProfile -NonInteractive -Command '
    '"$PSVersionTable.PSVersion | ConvertTo-Xml -NoTypeInformation -As String"'
)
EXECUTION_POLICY_COMMAND = (
    'powershell -NoProfile -NonInteractive -Command "Get-ExecutionPolicy"'
)
WINRM_CONFIG_COMMAND = "winrm get winrm/config -format:xml"

# PowerShell ends a single-quoted literal on any of these.
_SINGLE_QUOTES = re.compile("(['\u2018\u2019\u201a\u201b])")


def ps_quote(value: str) -> str:
    if any(char in value for char in '"\r\n'):
        raise ValueError(f"Unsupported character in remote path: {value!r}")
    return "'" + _SINGLE_QUOTES.sub(r"\1\1", value) + "'"


def powershell(script: str) -> str:
    if '"' in script:
        raise ValueError("PowerShell script must not contain double quotes")
    return f'powershell -NoProfile -NonInteractive -Command "{script}"'


def encode_chunk(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def append_chunk(temp_path: str, offset: int, data: bytes) -> str:
    """Write ``data`` at ``offset`` of ``temp_path``, truncating anything after it.

    Sending the same chunk twice leaves the file unchanged, which makes the
    command safe to retry. The first chunk (offset 0) also creates the parent
    directory and discards a stale temp file from an earlier failed run.
    """

    parts = [
        "$ErrorActionPreference='Stop'",
        f"$p={ps_quote(temp_path)}",
        f"$o={offset}",
        f"$b=[System.Convert]::FromBase64String('{encode_chunk(data)}')",
    ]
    if offset == 0:
        parts.append(
            "$d=[System.IO.Path]::GetDirectoryName([System.IO.Path]::GetFullPath($p))"
        )
        parts.append("if ($d) { [void][System.IO.Directory]::CreateDirectory($d) }")
    parts.append("$f=[System.IO.File]::Open($p,'OpenOrCreate','Write')")
    parts.append(
        f"try {{ if ($f.Length -lt $o) {{ exit {EXIT_OFFSET_MISMATCH} }}; "
        "$f.SetLength($o); [void]$f.Seek($o,'Begin'); $f.Write($b,0,$b.Length) } "
        "finally { $f.Close() }"
    )
    return powershell("; ".join(parts))


def finalize(temp_path: str, destination: str, size: int) -> str:
    """Promote ``temp_path`` to ``destination`` once it holds ``size`` bytes.

    The promotion is a same-directory rename: ``File.Replace`` over an existing
    destination, ``File.Move`` otherwise. The destination is never opened for
    writing, so it is either its previous content or the complete new file.
    """

    parts = [
        "$ErrorActionPreference='Stop'",
        f"$t={ps_quote(temp_path)}",
        f"$d={ps_quote(destination)}",
        f"$n={size}",
        f"if ([System.IO.Directory]::Exists($d)) {{ exit {EXIT_IS_DIRECTORY} }}",
        f"if (-not [System.IO.File]::Exists($t)) {{ exit {EXIT_MISSING_TEMP} }}",
        f"if ((New-Object System.IO.FileInfo $t).Length -ne $n) {{ exit {EXIT_OFFSET_MISMATCH} }}",
        "if ([System.IO.File]::Exists($d)) { [System.IO.File]::Replace($t,$d,[NullString]::Value) } "
        "else { [System.IO.File]::Move($t,$d) }",
    ]
    return powershell("; ".join(parts))


def list_directory(path: str) -> str:
    """One line per entry: ``mode<TAB>container<TAB>size<TAB>mtime<TAB>name``.

    ``container`` is 1 for directories, including directory links and junctions.
    """

    parts = [
        "$ErrorActionPreference='Stop'",
        "[Console]::OutputEncoding=[System.Text.Encoding]::UTF8",
        f"Get-ChildItem -LiteralPath {ps_quote(path)} -Force | ForEach-Object {{ "
        "$c = if ($_.PSIsContainer) { 1 } else { 0 }; "
        "$n = if ($_.PSIsContainer) { 0 } else { $_.Length }; "
        "($_.Mode, $c, $n, $_.LastWriteTimeUtc.ToString('o'), $_.Name) -join [char]9 }",
    ]
    return powershell("; ".join(parts))

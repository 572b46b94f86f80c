"""Parsers for gpg command output.

These follow the text layout printed by GnuPG 1.4 (`gpg1`). Newer GnuPG
releases print fingerprints and import diagnostics differently, so changes
to the gpg binary in use must be checked against the tests for this module.
"""

from typing import Optional

from rhagent.errors import KeyIdParseError


def parse_fingerprint(output: str) -> str:
    """Fingerprint from `gpg --fingerprint` output, or "" if none is listed.

    gpg1 prints it as `      Key fingerprint = 1A2B 3C4D ...`.
    """
    for line in output.splitlines():
        if "fingerprint" in line:
            fields = line.split("=")
            if len(fields) > 1:
                return fields[1].replace(" ", "")
    return ""


def parse_import_key_id(diagnostics: str) -> str:
    """Key id of the key imported by `gpg -v --import`.

    The second stderr line reads `gpg: pub  2048R/8E7D8B0C 2017-03-14 ...`.
    Fields are split on single spaces, so the doubled space after `pub`
    leaves an empty field and the `<bits><algo>/<id>` cell is the fourth.
    """
    key_id: Optional[str] = None

    lines = diagnostics.split("\n")
    if len(lines) > 2:
        cells = lines[1].split(" ")
        if len(cells) > 3:
            parts = cells[3].split("/")
            if len(parts) > 1:
                key_id = parts[1]

    if not key_id:
        raise KeyIdParseError("Key id parsing error")
    return key_id


def parse_listed_key_id(output: str) -> str:
    """Key id from gpg listing a key fed on stdin (`pub  2048R/<id> ...`)."""
    fields = output.split()
    if len(fields) > 1:
        parts = fields[1].split("/")
        if len(parts) > 1:
            return parts[1]
    return ""

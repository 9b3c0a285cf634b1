"""Reusable audit predicates.

Each predicate raises ``ValueError`` describing why a provider would
mishandle the record.
"""

from __future__ import annotations

from .models import RecordConfig
from .txtutil import txt_octets


def txt_is_empty(rc: RecordConfig) -> None:
    if rc.get_target_txt_joined() == "":
        raise ValueError("txt is empty")


def txt_longer_than(maxlength: int):
    """Return a predicate rejecting TXT values longer than ``maxlength`` octets."""

    def check(rc: RecordConfig) -> None:
        if len(txt_octets(rc.get_target_txt_joined())) > maxlength:
            raise ValueError(f"txt is longer than {maxlength} octets")

    check.__name__ = f"txt_longer_than_{maxlength}"
    return check


def txt_has_unpaired_double_quotes(rc: RecordConfig) -> None:
    if rc.get_target_txt_joined().count('"') % 2 == 1:
        raise ValueError("txt has unpaired double quotes")


def txt_has_trailing_space(rc: RecordConfig) -> None:
    value = rc.get_target_txt_joined()
    if value and value[-1] == " ":
        raise ValueError("txt has trailing space")


def txt_has_backslash(rc: RecordConfig) -> None:
    if "\\" in rc.get_target_txt_joined():
        raise ValueError("txt has backslash")


def txt_has_double_quotes(rc: RecordConfig) -> None:
    if '"' in rc.get_target_txt_joined():
        raise ValueError("txt has double quotes")


def txt_has_backticks(rc: RecordConfig) -> None:
    if "`" in rc.get_target_txt_joined():
        raise ValueError("txt has backtick")


def mx_null(rc: RecordConfig) -> None:
    if rc.target == ".":
        raise ValueError("mx has null target")


def mx_priority_more_than_100(rc: RecordConfig) -> None:
    if rc.mx_preference > 100:
        raise ValueError("mx preference is greater than 100")


def caa_flag_is_non_zero(rc: RecordConfig) -> None:
    if rc.fields.flag != 0:
        raise ValueError("caa flag is non-zero")


def caa_target_contains_whitespace(rc: RecordConfig) -> None:
    if any(c.isspace() for c in rc.target):
        raise ValueError("caa target contains whitespace")


def srv_has_null_target(rc: RecordConfig) -> None:
    if rc.target == ".":
        raise ValueError("srv has null target")


def srv_has_empty_target(rc: RecordConfig) -> None:
    if rc.target in {"", "."}:
        raise ValueError("srv has empty target")


def srv_has_zero_port(rc: RecordConfig) -> None:
    if rc.srv_port == 0:
        raise ValueError("srv has zero port")


def ns_at_apex(rc: RecordConfig) -> None:
    if rc.name == "@":
        raise ValueError("ns at apex is not supported")


def label_not_apex(rc: RecordConfig) -> None:
    if rc.name != "@":
        raise ValueError("record is only supported at the apex")


def naptr_has_empty_target(rc: RecordConfig) -> None:
    if rc.target in {"", "."}:
        raise ValueError("naptr has empty target")

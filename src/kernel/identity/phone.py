"""
Phone number canonicalization.

Numbers reach us in several shapes (``054-936-9402``, ``0549369402``,
``972549369402``, ``+972549369402``, ``+9720549369402``) and the record store
may hold any of them. The canonical form keeps the local trunk digit after
the country code (``+9720549369402``) because that is the shape the SMS
gateway accepts in sandbox delivery mode. Input we cannot interpret is
passed through unchanged rather than rejected.
"""

import re
from typing import List

from src.kernel.infra.messaging import mask_destination

_SEPARATORS = re.compile(r"[\s\-().]")


class PhoneNormalizer:
    """Convert between local, international and canonical phone forms."""

    def __init__(self, country_code: str = "972", trunk_prefix: str = "0"):
        self.country_code = country_code
        self.trunk_prefix = trunk_prefix

    @property
    def international_prefix(self) -> str:
        return "+" + self.country_code

    def clean(self, raw: str) -> str:
        """Drop whitespace and common separators."""
        if not raw:
            return raw
        return _SEPARATORS.sub("", raw.strip())

    def canonical(self, raw: str) -> str:
        """
        Map raw input to the canonical storage form.

        - ``+...`` is already international and kept as-is
        - ``0...`` gets the country code in front, trunk digit kept
        - ``972...`` gets the ``+``
        - other digit strings are local numbers missing the trunk digit
        """
        phone = self.clean(raw)
        if not phone:
            return raw
        if phone.startswith("+"):
            return phone
        if not phone.isdigit():
            return raw
        if phone.startswith(self.trunk_prefix):
            return self.international_prefix + phone
        if phone.startswith(self.country_code):
            return "+" + phone
        return self.international_prefix + self.trunk_prefix + phone

    def to_local(self, raw: str) -> str:
        """Map any form back to the local display form (``0549369402``)."""
        phone = self.clean(raw)
        if not phone:
            return raw

        national = None
        for prefix in (self.international_prefix, self.country_code):
            if phone.startswith(prefix):
                national = phone[len(prefix):]
                break

        if national is not None:
            if national.startswith(self.trunk_prefix):
                return national
            return self.trunk_prefix + national
        if phone.startswith("+") or not phone.isdigit():
            # Foreign or malformed number
            return raw
        if phone.startswith(self.trunk_prefix):
            return phone
        return self.trunk_prefix + phone

    def subject_key(self, raw: str) -> str:
        """
        One key per number regardless of input format.

        ``canonical`` keeps ``+`` input untouched, so ``+972549369402`` and
        ``0549369402`` differ there; going through the local form first
        makes them agree. Foreign numbers keep their canonical form.
        """
        return self.canonical(self.to_local(raw))

    def candidates(self, raw: str) -> List[str]:
        """
        Representations to try, in order, when the stored format is unknown.

        Contains the canonical form of every input that differs only in the
        leading ``+``, the trunk digit, or separators.
        """
        if not raw:
            return []
        forms = [raw.strip(), self.clean(raw), self.canonical(raw)]

        local = self.to_local(raw)
        forms.append(local)
        if local.isdigit() and local.startswith(self.trunk_prefix):
            forms.append(self.international_prefix + local)
            forms.append(self.international_prefix + local[len(self.trunk_prefix):])

        seen = set()
        ordered = []
        for form in forms:
            if form and form not in seen:
                seen.add(form)
                ordered.append(form)
        return ordered

    def mask(self, raw: str, visible_digits: int = 3) -> str:
        """Masked form for logs."""
        return mask_destination(self.clean(raw) or "", visible_digits)

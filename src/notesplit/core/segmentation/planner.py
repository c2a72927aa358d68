"""
Segmentation Planner
====================

Turns the per-page classifications of one document into a proposed
partition into delivery notes.

Rules:
1. Pages are scanned in order 1..N.
2. A note opens at every ``start`` page, and at page 1 whatever its role.
3. ``continuation`` and ``unknown`` pages join the open note.
4. A note's fields come from its start page; later pages only fill fields
   the start page left empty. A note opened implicitly at page 1 carries
   no fields.
5. The display name is the delivery-note number, else ``Følgeseddel <start>``.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from notesplit.core.extraction.base import PageClassification, PageFields, PageRole
from notesplit.shared.messages import DEFAULT_NOTE_NAME
from notesplit.shared.sanitize import MAX_TEXT_LENGTH, sanitize_text


@dataclass
class PlannedNote:
    """One candidate delivery note."""

    start_page: int
    page_numbers: list[int]
    fields: PageFields = field(default_factory=PageFields)
    has_start: bool = False

    @property
    def display_name(self) -> str:
        number = sanitize_text(self.fields.delivery_note_number)
        if number:
            return number[:MAX_TEXT_LENGTH]
        return DEFAULT_NOTE_NAME.format(page=self.start_page)


def _fill_empty(target: PageFields, source: PageFields) -> None:
    for name, value in source.model_dump().items():
        if value and not getattr(target, name):
            setattr(target, name, value)


def plan_partition(classifications: Sequence[PageClassification]) -> list[PlannedNote]:
    """
    Partition pages ``1..len(classifications)`` into notes.

    ``classifications[i]`` describes page ``i + 1``. Every page lands in
    exactly one note; an empty input gives an empty plan.
    """
    notes: list[PlannedNote] = []
    current: PlannedNote | None = None

    for index, classification in enumerate(classifications):
        page = index + 1

        if classification.role == PageRole.START:
            current = PlannedNote(
                start_page=page,
                page_numbers=[page],
                fields=classification.fields.model_copy(),
                has_start=True,
            )
            notes.append(current)
            continue

        if current is None:
            # Page 1 without a start marker opens a note with unknown metadata
            current = PlannedNote(start_page=page, page_numbers=[page])
            notes.append(current)
            continue

        current.page_numbers.append(page)
        if current.has_start:
            _fill_empty(current.fields, classification.fields)

    return notes

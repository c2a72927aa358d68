from notesplit.core.extraction.base import PageClassification, PageFields, PageRole
from notesplit.core.segmentation.planner import plan_partition


def start(**fields) -> PageClassification:
    return PageClassification(role=PageRole.START, fields=PageFields(**fields), confidence=0.9)


def cont(**fields) -> PageClassification:
    return PageClassification(role=PageRole.CONTINUATION, fields=PageFields(**fields), confidence=0.9)


def unknown() -> PageClassification:
    return PageClassification.unknown()


def test_empty_input_gives_empty_plan():
    assert plan_partition([]) == []


def test_splits_at_start_pages():
    plan = plan_partition([start(), cont(), cont(), start(), cont(), cont()])

    assert [note.page_numbers for note in plan] == [[1, 2, 3], [4, 5, 6]]
    assert [note.start_page for note in plan] == [1, 4]


def test_all_unknown_is_one_note_without_metadata():
    plan = plan_partition([unknown(), unknown(), unknown()])

    assert len(plan) == 1
    assert plan[0].page_numbers == [1, 2, 3]
    assert plan[0].fields.is_empty()
    assert plan[0].display_name == "Følgeseddel 1"


def test_single_late_start_leaves_leading_unknown_note():
    plan = plan_partition([cont(), unknown(), start(delivery_note_number="FS-9"), cont()])

    assert [note.page_numbers for note in plan] == [[1, 2], [3, 4]]
    assert plan[0].has_start is False
    assert plan[1].display_name == "FS-9"


def test_unknown_pages_join_open_note():
    plan = plan_partition([start(), cont(), unknown(), cont()])

    assert [note.page_numbers for note in plan] == [[1, 2, 3, 4]]


def test_later_pages_only_fill_empty_fields():
    plan = plan_partition(
        [
            start(company_name="Acme", delivery_date=None),
            cont(company_name="Other", delivery_date="2024-05-01"),
        ]
    )

    assert plan[0].fields.company_name == "Acme"
    assert plan[0].fields.delivery_date == "2024-05-01"


def test_implicit_first_note_ignores_fields_of_its_pages():
    plan = plan_partition([cont(company_name="Acme"), cont(shipping_id="S-1")])

    assert plan[0].fields.is_empty()


def test_display_name_falls_back_to_start_page():
    plan = plan_partition([start(company_name="Acme"), start(delivery_note_number="  ")])

    assert plan[0].display_name == "Følgeseddel 1"
    assert plan[1].display_name == "Følgeseddel 2"


def test_start_page_fields_are_copied():
    page = start(delivery_note_number="FS-1")
    plan = plan_partition([page, cont(company_name="Acme")])

    assert page.fields.company_name is None
    assert plan[0].fields.company_name == "Acme"

import uuid

import pytest

from checklist_sync.document import ItemCategory, Status
from checklist_sync.mapper.common import (condition_to_status,
                                          decode_bad_elements,
                                          encode_bad_elements,
                                          is_reserved_name, media_id_for_url,
                                          split_item_name, url_to_media)


@pytest.mark.parametrize(
    "notes, bad_elements",
    [
        ("cracked tiles", ["techo", "paredes"]),
        (None, ["suelo"]),
        ("first line\nsecond line", ["a", "b", "c"]),
        ("no marker here", []),
    ],
)
def test_bad_elements_marker_parses_back_exactly(notes, bad_elements):
    encoded = encode_bad_elements(notes, bad_elements)

    assert decode_bad_elements(encoded) == (notes, bad_elements)


def test_encoded_marker_format():
    assert encode_bad_elements("x", ["a", "b"]) == "x\nBad elements: a, b"
    assert encode_bad_elements(None, []) is None


def test_marker_is_only_recognised_on_its_own_line():
    notes = "mentions Bad elements: inline"

    assert decode_bad_elements(notes) == (notes, [])


def test_legacy_conditions_map_to_status():
    assert condition_to_status("buen_estado") is Status.GOOD
    assert condition_to_status("necesita_reparacion") is Status.NEEDS_REPAIR
    assert condition_to_status("necesita_reemplazo") is Status.NEEDS_REPLACEMENT
    assert condition_to_status("no_aplica") is Status.NOT_APPLICABLE
    assert condition_to_status("good") is Status.GOOD
    assert condition_to_status("unknown") is None
    assert condition_to_status(None) is None


def test_reserved_names():
    assert is_reserved_name("fotos-portal")
    assert is_reserved_name("videos-portal")
    assert is_reserved_name("appliance-horno")
    assert is_reserved_name("mobiliario")
    assert not is_reserved_name("mobiliario-fijo")
    assert not is_reserved_name("acabados")


def test_split_item_name_reads_unit_suffix():
    assert split_item_name("carpentry-ventanas") == (
        ItemCategory.CARPENTRY,
        "ventanas",
        None,
    )
    assert split_item_name("climatization-radiadores-3") == (
        ItemCategory.CLIMATIZATION,
        "radiadores",
        2,
    )
    assert split_item_name("acabados") is None


def test_split_item_name_prefers_known_item_ids():
    known = {"toma-2"}

    assert split_item_name("system-toma-2", known) == (ItemCategory.SYSTEM, "toma-2", None)


def test_media_id_is_recovered_from_uploaded_object_name():
    media_id = str(uuid.uuid4())
    url = f"https://cdn.test/object/public/b/p/i/z/1712345678901_{media_id}.png"

    ref = url_to_media(url)

    assert ref.id == media_id
    assert ref.mime_type == "image/png"
    assert ref.is_durable


def test_foreign_urls_get_a_stable_id():
    url = "https://cdn.test/legacy/photo.jpg"

    assert media_id_for_url(url) == media_id_for_url(url)
    assert media_id_for_url(url) != media_id_for_url(url + "?v=2")


def test_video_mime_type_from_extension():
    assert url_to_media("https://cdn.test/a.mov", is_video=True).mime_type == (
        "video/quicktime"
    )
    assert url_to_media("https://cdn.test/a", is_video=True).mime_type == "video/mp4"

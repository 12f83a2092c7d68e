from equipment_inventory_scraper.matching import (
    build_key_index,
    match_key,
    match_sources,
    normalize_make,
)


def _rec(year=2024, make="JOHN DEERE", model="5095M", location="GRETNA", **extra):
    return {"year": year, "make": make, "model": model, "location": location, **extra}


def test_match_key_normalises_parts():
    record = _rec(year="2024", make="deere", model=" 5095m ", location="Gretna, NE")
    assert match_key(record) == "2024|JOHN DEERE|5095M|GRETNA"


def test_match_key_none_when_any_part_missing():
    assert match_key(_rec(location="")) is None
    assert match_key(_rec(year=None)) is None
    assert match_key(_rec(make="")) is None


def test_normalize_make_aliases():
    assert normalize_make("JD") == "JOHN DEERE"
    assert normalize_make("Case-IH") == "CASE IH"
    assert normalize_make("Kubota") == "KUBOTA"


def test_same_machine_in_both_sets_is_one_duplicate():
    a = [_rec(), _rec(model="8R 410")]
    b = [_rec(make="John Deere"), _rec(model="S780")]

    result = match_sources(a, b)

    assert result.duplicate_count == 1
    assert result.unique_b == 1
    assert result.unique_a == 1
    assert result.overlap_pct == 50
    assert result.duplicates[0][1] is b[0]


def test_records_with_empty_component_never_match():
    a = [_rec(location="")]
    b = [_rec(location="")]
    result = match_sources(a, b)
    assert result.duplicate_count == 0
    assert result.unique_b == 1


def test_empty_second_set_has_zero_overlap():
    result = match_sources([_rec()], [])
    assert result.duplicate_count == 0
    assert result.overlap_pct == 0


def test_one_hit_per_second_set_record():
    # two A records on one key, two B records on the same key
    a = [_rec(stock="A1"), _rec(stock="A2")]
    b = [_rec(), _rec()]

    result = match_sources(a, b)

    assert result.duplicate_count == 2
    assert result.unique_a == 0
    assert all(pair[0]["stock"] == "A2" for pair in result.duplicates)


def test_inputs_are_not_modified():
    a = [_rec()]
    b = [_rec()]
    match_sources(a, b)
    assert a == [_rec()] and b == [_rec()]
    assert list(build_key_index(a)) == ["2024|JOHN DEERE|5095M|GRETNA"]

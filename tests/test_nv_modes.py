from nv_modes import (
    REG_MULTI_SZ,
    REG_SZ,
    ModeEntry,
    decode_value,
    encode_value,
    format_entry,
    has_resolution,
    merge_resolution,
    parse_mode_list,
)


def test_format_entry():
    assert format_entry(1566, 1080) == "1566x1080x8,16,32,64=1F;"


def test_merge_appends_with_single_space():
    merged, changed = merge_resolution("1920x1080x8,16,32=1F;", 2100, 1440)
    assert changed
    assert merged == "1920x1080x8,16,32=1F; 2100x1440x8,16,32,64=1F;"


def test_merge_trims_trailing_whitespace_before_appending():
    merged, changed = merge_resolution("  1920x1080x8,16,32=1F;  \n", 1280, 960)
    assert changed
    assert merged == "1920x1080x8,16,32=1F; 1280x960x8,16,32,64=1F;"


def test_merge_into_empty_value_has_no_leading_space():
    for empty in ("", "   ", "\t\n"):
        merged, changed = merge_resolution(empty, 1566, 1080)
        assert changed
        assert merged == "1566x1080x8,16,32,64=1F;"


def test_merge_existing_resolution_with_other_depths_is_unchanged():
    text = "1440x1080x16,32=1F; 1920x1080x8,16,32=1F;"
    merged, changed = merge_resolution(text, 1440, 1080)
    assert not changed
    assert merged == text


def test_merge_preserves_unknown_tokens():
    text = "SHV 1920x1080x8,16,32=1F; {*}1F"
    merged, _ = merge_resolution(text, 1280, 1024)
    assert merged.startswith(text)
    assert merged.endswith(" 1280x1024x8,16,32,64=1F;")


def test_merge_is_idempotent():
    once, _ = merge_resolution("1920x1080x8,16,32=1F;", 2100, 1440)
    twice, changed = merge_resolution(once, 2100, 1440)
    assert not changed
    assert twice == once


def test_has_resolution_matches_literal_prefix_only():
    text = "1920x1080x8,16,32=1F;"
    assert has_resolution(text, 1920, 1080)
    assert not has_resolution(text, 1920, 108)
    assert not has_resolution(text, 192, 1080)


def test_has_resolution_does_not_anchor_to_token_start():
    # 未按条目边界匹配："1920x1080x" 同样包含 "920x1080x"
    assert has_resolution("1920x1080x8,16,32=1F;", 920, 1080)


def test_decode_joins_multi_string_without_separator():
    assert decode_value(["1920x1080x8,16,32=1F; ", "1280x720x8,16,32=1F;"]) == (
        "1920x1080x8,16,32=1F; 1280x720x8,16,32=1F;"
    )
    assert decode_value(None) == ""
    assert decode_value("abc") == "abc"


def test_encode_keeps_representation():
    assert encode_value("x", REG_MULTI_SZ) == ["x"]
    assert encode_value("x", REG_SZ) == "x"


def test_parse_mode_list_keeps_raw_tokens():
    tokens = parse_mode_list("SHV 1920x1080x8,16,32=1f; 2100x1440x8,16,32,64=1F; {*}1F")
    assert tokens[0] == "SHV"
    assert tokens[1] == ModeEntry(1920, 1080, (8, 16, 32), "1F")
    assert tokens[2] == ModeEntry(2100, 1440)
    assert tokens[3] == "{*}1F"

from __future__ import annotations

from formgate.sanitize import (
    escape_html,
    validate_email,
    validate_name,
    validate_phone,
    validate_text_field,
    validate_url,
)


def test_validate_email():
    assert validate_email("  User@Example.COM ") == "user@example.com"
    assert validate_email("a@b.c") == "a@b.c"
    assert validate_email("no-at-sign.com") is None
    assert validate_email("a b@c.de") is None
    assert validate_email("x@y") is None
    assert validate_email("a@" + "b" * 250 + ".com") is None
    assert validate_email(12345) is None
    assert validate_email(None) is None


def test_validate_phone():
    assert validate_phone("+91 (987) 654-3210") == "+91 (987) 654-3210"
    assert validate_phone(" 98765x43210 ") == "9876543210"
    assert validate_phone("123456") is None
    assert validate_phone("1" * 21) is None
    assert validate_phone(9876543210) is None


def test_validate_name():
    assert validate_name("  Anne-Marie O'Neil ") == "Anne-Marie O'Neil"
    assert validate_name("José Núñez") == "José Núñez"
    assert validate_name("A") is None
    assert validate_name("Robert'); DROP TABLE") is None
    assert validate_name("<script>") is None
    assert validate_name("x" * 101) is None
    assert validate_name(["Ann"]) is None


def test_validate_text_field():
    assert validate_text_field("  hello  ") == "hello"
    assert validate_text_field("   ") is None
    assert validate_text_field("x" * 5001) is None
    assert validate_text_field("abc", 1, 2) is None
    assert validate_text_field({"text": "x"}) is None


def test_validate_url():
    assert validate_url("https://newus.in/brochure.pdf") == "https://newus.in/brochure.pdf"
    assert validate_url("javascript:alert(1)") is None
    assert validate_url("https:///nohost") is None
    assert validate_url("https://newus.in/a b") is None
    assert validate_url("https://newus.in/" + "a" * 2048) is None


def test_escape_html():
    assert escape_html("<b>&'\"/") == "&lt;b&gt;&amp;&#x27;&quot;&#x2F;"
    assert escape_html("plain text") == "plain text"
    assert escape_html(None) == ""
    assert escape_html(42) == ""

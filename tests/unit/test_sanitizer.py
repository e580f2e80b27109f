"""
Unit tests for IPO item sanitization.

Tests status normalization, issue size parsing, lead bank splitting, link
cleaning and required-field handling.
"""

import pytest
from ipo_digest.services.sanitizer import (
    clean_links,
    is_url,
    normalize_status,
    parse_issue_size,
    sanitize_item,
    sanitize_items,
)


class TestNormalizeStatus:
    """Tests for normalize_status function."""

    @pytest.mark.parametrize("raw,expected", [
        ("SEBI nod received", "approved"),
        ("Approved by SEBI", "approved"),
        ("DRHP filed", "DRHP"),
        ("drhp", "DRHP"),
        ("Filed draft red herring prospectus", "DRHP"),
        ("RHP", "RHP"),
        ("Red herring prospectus filed with RoC", "RHP"),
        ("rumor", "rumor"),
        ("Board considering listing", "rumor"),
        ("Company mulls IPO", "rumor"),
        ("Plans to list in 2026", "rumor"),
    ])
    def test_keywords_map_to_labels(self, raw, expected):
        assert normalize_status(raw) == expected

    def test_unknown_status_kept_trimmed(self):
        assert normalize_status("  Listed  ") == "Listed"


class TestParseIssueSize:
    """Tests for parse_issue_size function."""

    def test_number_passthrough(self):
        assert parse_issue_size(1200) == 1200.0
        assert parse_issue_size(850.5) == 850.5

    def test_negative_sign_dropped(self):
        assert parse_issue_size(-5) == 5.0
        assert parse_issue_size(-1250.5) == 1250.5
        assert parse_issue_size("-5") == 5.0

    def test_currency_string(self):
        assert parse_issue_size("₹1,200 Cr") == 1200.0

    def test_decimal_string(self):
        assert parse_issue_size("Rs 4,500.75 crore") == 4500.75

    def test_no_digits_returns_none(self):
        assert parse_issue_size("not disclosed") is None

    def test_malformed_number_returns_none(self):
        assert parse_issue_size("1.2.3") is None

    def test_none_and_bool_return_none(self):
        assert parse_issue_size(None) is None
        assert parse_issue_size(True) is None

    def test_infinity_returns_none(self):
        assert parse_issue_size(float('inf')) is None


class TestCleanLinks:
    """Tests for clean_links function."""

    def test_keeps_valid_urls(self):
        links = {'drhp': 'https://sebi.gov.in/drhp.pdf', 'news': ' https://example.com/a '}
        assert clean_links(links) == {
            'drhp': 'https://sebi.gov.in/drhp.pdf',
            'news': 'https://example.com/a',
        }

    def test_drops_invalid_and_placeholder_values(self):
        links = {'drhp': 'NA', 'rhp': '', 'exchange_notice': 'ftp://x.com/f', 'news': 42}
        assert clean_links(links) is None

    def test_drops_unknown_keys(self):
        assert clean_links({'website': 'https://acme.com'}) is None

    def test_non_dict_returns_none(self):
        assert clean_links("https://example.com") is None

    def test_is_url(self):
        assert is_url("http://example.com/x")
        assert not is_url("example.com/x")
        assert not is_url("https://")


class TestSanitizeItem:
    """Tests for sanitize_item function."""

    def test_minimal_item(self):
        assert sanitize_item({'company': ' Acme Ltd ', 'status': 'DRHP'}) == {
            'company': 'Acme Ltd',
            'status': 'DRHP',
        }

    def test_missing_company_or_status_rejected(self):
        assert sanitize_item({'company': 'Acme', 'status': '  '}) is None
        assert sanitize_item({'status': 'RHP'}) is None
        assert sanitize_item(None) is None
        assert sanitize_item("Acme") is None

    def test_full_item(self):
        item = {
            'company': 'Acme',
            'status': 'Got SEBI nod',
            'sector': ' Fintech ',
            'issue_size_cr': '₹2,000 crore',
            'expected_window': ' Q4 FY26 ',
            'lead_banks': ['Axis Capital', ' ', 'ICICI Securities'],
            'links': {'news': 'https://example.com/acme', 'drhp': 'NA'},
            'notes': ' Fresh issue plus OFS ',
        }
        assert sanitize_item(item) == {
            'company': 'Acme',
            'status': 'approved',
            'sector': 'Fintech',
            'issue_size_cr': 2000.0,
            'expected_window': 'Q4 FY26',
            'lead_banks': ['Axis Capital', 'ICICI Securities'],
            'links': {'news': 'https://example.com/acme'},
            'notes': 'Fresh issue plus OFS',
        }

    def test_lead_banks_string_split(self):
        item = {'company': 'Acme', 'status': 'RHP', 'lead_banks': 'Axis Capital; JM Financial | Kotak, '}
        assert sanitize_item(item)['lead_banks'] == ['Axis Capital', 'JM Financial', 'Kotak']

    def test_empty_optional_fields_omitted(self):
        item = {'company': 'Acme', 'status': 'RHP', 'sector': '', 'lead_banks': [], 'links': {}, 'notes': None}
        assert sanitize_item(item) == {'company': 'Acme', 'status': 'RHP'}

    def test_sanitize_items_counts_dropped(self):
        items = [{'company': 'Acme', 'status': 'RHP'}, {'company': '', 'status': 'RHP'}, None]
        sanitized, dropped = sanitize_items(items)
        assert sanitized == [{'company': 'Acme', 'status': 'RHP'}]
        assert dropped == 2

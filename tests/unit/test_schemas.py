"""
Unit tests for digest payload validation.
"""

import pytest
from pydantic import ValidationError

from ipo_digest.schemas import DigestPayload, flatten_errors
from tests.fixtures.sample_data import create_item, create_payload


class TestDigestPayload:
    """Tests for DigestPayload validation."""

    def test_valid_payload(self):
        digest = DigestPayload.model_validate(create_payload())
        assert digest.items[0].company == 'Tata Capital'
        assert digest.items[0].links.news == 'https://example.com/news/tata-capital'

    def test_defaults_applied(self):
        payload = {'as_of_date': '2025-10-06', 'items': []}
        assert DigestPayload.model_validate(payload).to_payload() == {
            'as_of_date': '2025-10-06',
            'timezone': 'Asia/Kolkata',
            'source_notes': [],
            'items': [],
        }

    def test_unknown_keys_ignored(self):
        payload = create_payload(extra_field='x', items=[create_item(rating=5)])
        dumped = DigestPayload.model_validate(payload).to_payload()
        assert 'extra_field' not in dumped
        assert 'rating' not in dumped['items'][0]

    def test_unset_optionals_dropped_from_output(self):
        payload = create_payload(items=[{'company': 'Acme', 'status': 'rumor'}])
        assert DigestPayload.model_validate(payload).to_payload()['items'] == [
            {'company': 'Acme', 'status': 'rumor'}
        ]

    def test_any_status_string_accepted(self):
        payload = create_payload(items=[create_item(status='Listed')])
        assert DigestPayload.model_validate(payload).items[0].status == 'Listed'

    def test_issue_size_must_be_number(self):
        with pytest.raises(ValidationError):
            DigestPayload.model_validate(create_payload(items=[create_item(issue_size_cr='1200')]))

    def test_integer_issue_size_accepted(self):
        payload = create_payload(items=[create_item(issue_size_cr=1200)])
        assert DigestPayload.model_validate(payload).items[0].issue_size_cr == 1200

    def test_invalid_link_rejected(self):
        with pytest.raises(ValidationError):
            DigestPayload.model_validate(create_payload(items=[create_item(links={'drhp': 'NA'})]))

    def test_explicit_null_rejected(self):
        payload = create_payload(items=[create_item(sector=None)])
        with pytest.raises(ValidationError):
            DigestPayload.model_validate(payload)

    def test_null_link_and_changes_rejected(self):
        with pytest.raises(ValidationError):
            DigestPayload.model_validate(create_payload(items=[create_item(links={'news': None})]))
        with pytest.raises(ValidationError):
            DigestPayload.model_validate(create_payload(changes_since_last_run=None))

    def test_missing_items_rejected(self):
        with pytest.raises(ValidationError):
            DigestPayload.model_validate({'as_of_date': '2025-10-06'})


class TestFlattenErrors:
    """Tests for flatten_errors function."""

    def test_field_errors_grouped_by_top_level_key(self):
        bad = {'items': [{'company': 'Acme'}, {'status': 'RHP'}]}
        with pytest.raises(ValidationError) as exc_info:
            DigestPayload.model_validate(bad)

        flattened = flatten_errors(exc_info.value)
        assert flattened['formErrors'] == []
        assert set(flattened['fieldErrors']) == {'as_of_date', 'items'}
        assert len(flattened['fieldErrors']['items']) == 2

    def test_non_object_body_is_form_error(self):
        with pytest.raises(ValidationError) as exc_info:
            DigestPayload.model_validate(None)

        flattened = flatten_errors(exc_info.value)
        assert len(flattened['formErrors']) == 1
        assert flattened['fieldErrors'] == {}

"""
Tests for query shaping, default windowing and text sanitization
"""
import pytest

from conftest import make_feature
from exceptions import NotFoundException
from schemas import SearchFilters
from services.query_service import (
    QueryService,
    build_match_expression,
    roadmap_url,
    sanitize_query_tokens,
    to_prefix_terms,
)


@pytest.fixture
def query_service(store, test_settings, fixed_clock):
    return QueryService(store, test_settings, clock=fixed_clock)


class TestSanitization:
    """Tests for free-text query sanitization"""

    def test_punctuation_only_query_is_absent(self):
        """Test a query of only punctuation yields no terms"""
        assert sanitize_query_tokens('(((***)))') == []
        assert build_match_expression('(((***)))') is None

    def test_tokens_become_prefix_terms(self):
        """Test punctuation is stripped and each token becomes a prefix term"""
        tokens = sanitize_query_tokens('Teams (Preview)!')
        assert tokens == ['Teams', 'Preview']
        assert to_prefix_terms(tokens) == ['Teams*', 'Preview*']
        assert build_match_expression('Teams (Preview)!') == '"Teams"* "Preview"*'

    def test_operator_words_are_quoted(self):
        """Test FTS operator keywords are searched as plain words"""
        assert build_match_expression('NOT AND') == '"NOT"* "AND"*'

    def test_empty_query(self):
        assert sanitize_query_tokens('') == []
        assert sanitize_query_tokens(None) == []


class TestDefaultWindow:
    """Tests for the implicit date range"""

    def test_no_filters_returns_recent_features_only(self, store, query_service):
        """Test a bare search covers the previous month through the current month"""
        store.write_features([
            make_feature(1, ga='2026-02', modified='2026-01-01T00:00:00Z'),
            make_feature(2, ga='2026-03', modified='2026-01-02T00:00:00Z'),
            make_feature(3, ga='2025-09', modified='2026-01-03T00:00:00Z'),
            make_feature(4, ga='2026-04', modified='2026-01-04T00:00:00Z'),
        ])

        response = query_service.search(SearchFilters())

        assert [r['id'] for r in response.results] == [2, 1]
        assert response.total_count == 2

    def test_window_crosses_year_boundary(self, store, test_settings):
        """Test January windows start in December of the previous year"""
        from datetime import datetime, timezone

        service = QueryService(store, test_settings, clock=lambda: datetime(2026, 1, 10, tzinfo=timezone.utc))
        criteria = service.build_criteria(SearchFilters())

        assert (criteria.date_from, criteria.date_to) == ('2025-12', '2026-01')

    def test_sanitized_away_query_still_windows(self, query_service):
        """Test a query reduced to nothing counts as no filter"""
        criteria = query_service.build_criteria(SearchFilters(query='!!! ???'))

        assert criteria.match_expression is None
        assert (criteria.date_from, criteria.date_to) == ('2026-02', '2026-03')

    @pytest.mark.parametrize('filters', [
        SearchFilters(query='Teams'),
        SearchFilters(products=['Outlook']),
        SearchFilters(platforms=['Web']),
        SearchFilters(cloud_instances=['GCC']),
        SearchFilters(status='Launched'),
        SearchFilters(date_from='2020-01'),
        SearchFilters(date_to='2030-12'),
    ])
    def test_any_dimension_disables_window(self, query_service, filters):
        """Test a single supplied dimension suppresses the default range"""
        criteria = query_service.build_criteria(filters)

        assert criteria.date_from == filters.date_from
        assert criteria.date_to == filters.date_to


class TestSearch:
    """Tests for result shaping and pagination"""

    def test_text_search_keeps_modified_ordering(self, store, query_service):
        """Test full-text results are still ordered by modified descending"""
        store.write_features([
            make_feature(1, title='Teams rooms', modified='2026-01-01T00:00:00Z'),
            make_feature(2, title='Teams chat', modified='2026-02-01T00:00:00Z'),
            make_feature(3, title='Outlook', description='Nothing here', modified='2026-03-01T00:00:00Z'),
        ])

        response = query_service.search(SearchFilters(query='team'))

        assert [r['id'] for r in response.results] == [2, 1]

    def test_terms_are_anded(self, store, query_service):
        """Test every term must match"""
        store.write_features([
            make_feature(1, title='Teams Premium', description=None),
            make_feature(2, title='Teams Phone', description=None),
        ])

        response = query_service.search(SearchFilters(query='Teams (Premium)!'))

        assert [r['id'] for r in response.results] == [1]

    def test_pagination(self, store, query_service):
        """Test total_count and has_more across pages"""
        store.write_features([make_feature(i, modified=f'2026-01-{i:02d}T00:00:00Z') for i in range(1, 6)])
        filters = dict(status='In development', limit=2)

        first = query_service.search(SearchFilters(offset=0, **filters))
        last = query_service.search(SearchFilters(offset=4, **filters))

        assert [r['id'] for r in first.results] == [5, 4]
        assert first.total_count == 5
        assert first.has_more is True
        assert [r['id'] for r in last.results] == [1]
        assert last.has_more is False

    def test_result_shape(self, store, query_service):
        """Test rows are a light projection with a truncated description"""
        store.write_features([make_feature(1, description='x' * 250, products=['Outlook'])])

        row = query_service.search(SearchFilters(status='In development')).results[0]

        assert row['description'] == 'x' * 200 + '...'
        assert row['products'] == ['Outlook']
        assert row['platforms'] == ['Web']
        assert row['roadmap_url'] == roadmap_url(1)
        assert 'cloud_instances' not in row
        assert 'availabilities' not in row

        assert store.get_feature_by_id(1)['description'] == 'x' * 250
        assert query_service.get_feature(1)['description'] == 'x' * 250

    def test_short_description_untouched(self, store, query_service):
        """Test descriptions of 200 characters are not marked"""
        store.write_features([make_feature(1, description='y' * 200)])

        row = query_service.search(SearchFilters(status='In development')).results[0]

        assert row['description'] == 'y' * 200


class TestGetFeature:
    """Tests for full-detail lookup"""

    def test_includes_references(self, store, query_service):
        """Test detail carries roadmap and Learn URLs"""
        store.write_features([make_feature(42, description='z' * 300)])

        feature = query_service.get_feature(42)

        assert feature['description'] == 'z' * 300
        assert feature['references']['roadmap_url'] == (
            'https://www.microsoft.com/en-us/microsoft-365/roadmap?filters=&searchterms=42'
        )
        assert feature['references']['learn_search_url_en'] == 'https://learn.microsoft.com/en-us/search/?terms=42'

    def test_configured_locale(self, store, test_settings, fixed_clock):
        """Test the configured locale is used next to en-us"""
        test_settings['references']['locale'] = 'ja-jp'
        store.write_features([make_feature(42)])

        references = QueryService(store, test_settings, clock=fixed_clock).get_feature(42)['references']

        assert '/ja-jp/' in references['roadmap_url']
        assert '/en-us/' in references['roadmap_url_en']
        assert '/ja-jp/' in references['learn_search_url']

    def test_unknown_id_raises(self, query_service):
        """Test unknown ids raise NotFoundException"""
        with pytest.raises(NotFoundException):
            query_service.get_feature(999)


class TestGuide:
    """Tests for the guide data"""

    def test_guide_lists_values(self, store, query_service, sample_features):
        """Test guide exposes available filter values"""
        store.write_features(sample_features)

        guide = query_service.get_guide({'last_sync': 'x', 'record_count': 3, 'hours_since_sync': 0.5, 'extra': 1})

        assert 'SharePoint' in guide['available_products']
        assert guide['available_statuses'] == ['In development', 'Launched', 'Rolling out']
        assert guide['data_freshness'] == {'last_sync': 'x', 'record_count': 3, 'hours_since_sync': 0.5}
        assert 'search_copilot' in guide['examples']

"""Integration tests for Lambda handler."""
import json
import logging
import os
from unittest.mock import Mock, patch

import pytest

import lambda_function
from cache.region_cache import Aggregator, RegionCacheStore
from catalog.models import EventRecord, Region
from finder.event_finder import EventFinder
from lambda_function import JsonFormatter, lambda_handler, setup_logging
from settings import Settings


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'TICKETMASTER_API_KEY': 'test-key',
        'TICKETMASTER_BASE_URL': 'https://example.test/discovery/v2/',
        'CACHE_TTL_MINUTES': '15',
        'LOG_LEVEL': 'INFO',
        'TIMEOUT_SECONDS': '30'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 512
    context.invoked_function_arn = 'arn:aws:lambda:us-east-1:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture(autouse=True)
def reset_finder():
    """Drop the process-wide finder between tests."""
    lambda_function._finder = None
    lambda_function._finder_settings = None
    yield
    lambda_function._finder = None
    lambda_function._finder_settings = None


@pytest.fixture
def sample_events():
    """Create sample cached events."""
    return [
        EventRecord(id='e1', name='Arkells Rally', venue_name='Budweiser Stage', artist_name='Arkells'),
        EventRecord(id='e2', name='Feist', venue_name='Massey Hall', artist_name='Feist'),
    ]


@pytest.fixture
def finder(sample_events):
    """Create an EventFinder backed by a canned cache."""
    store = RegionCacheStore(lambda region: sample_events, known_regions=[Region.TORONTO])
    return EventFinder(
        Aggregator(store),
        detail_fetcher=Mock(return_value=None),
        raw_fetcher=Mock(return_value='{"raw": true}')
    )


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    @patch('lambda_function.build_finder')
    def test_get_events_by_artist(self, mock_build, finder, mock_env, mock_context):
        """Test a list operation returns the JSON of matching events."""
        mock_build.return_value = finder

        response = lambda_handler(
            {'operation': 'get_events_by_artist', 'artist': 'arkells'}, mock_context
        )

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['operation'] == 'get_events_by_artist'
        assert [e['id'] for e in json.loads(body['result'])] == ['e1']
        assert 'duration_seconds' in body

    @patch('lambda_function.build_finder')
    def test_list_operation_not_found_message(self, mock_build, finder, mock_env, mock_context):
        """Test empty filters answer with a descriptive sentence."""
        mock_build.return_value = finder

        response = lambda_handler(
            {'operation': 'get_events_by_venue', 'venue': 'Rogers Centre'}, mock_context
        )

        body = json.loads(response['body'])
        assert body['result'] == 'No events found for venue: Rogers Centre'

    @patch('lambda_function.build_finder')
    def test_get_event_count(self, mock_build, finder, mock_env, mock_context):
        """Test the count operation returns an integer."""
        mock_build.return_value = finder

        response = lambda_handler({'operation': 'get_event_count'}, mock_context)

        assert json.loads(response['body'])['result'] == 2

    @patch('lambda_function.build_finder')
    def test_get_event_by_id_not_found(self, mock_build, finder, mock_env, mock_context):
        """Test an unknown id answers "Event not found"."""
        mock_build.return_value = finder

        response = lambda_handler({'operation': 'get_event_by_id', 'id': 'nope'}, mock_context)

        assert json.loads(response['body'])['result'] == 'Event not found'

    @patch('lambda_function.build_finder')
    def test_get_events_with_url(self, mock_build, finder, mock_env, mock_context):
        """Test the raw passthrough operation."""
        mock_build.return_value = finder

        response = lambda_handler(
            {'operation': 'get_events_with_url', 'request_url': 'https://example.test/x'},
            mock_context
        )

        assert json.loads(response['body'])['result'] == '{"raw": true}'

    @patch('lambda_function.build_finder')
    def test_finder_reused_across_invocations(self, mock_build, finder, mock_env, mock_context):
        """Test the cache survives between warm invocations."""
        mock_build.return_value = finder

        lambda_handler({'operation': 'get_event_count'}, mock_context)
        lambda_handler({'operation': 'get_event_count'}, mock_context)

        mock_build.assert_called_once()

    @patch('lambda_function.build_finder')
    def test_settings_passed_to_builder(self, mock_build, finder, mock_env, mock_context):
        """Test configuration is read from the environment."""
        mock_build.return_value = finder

        lambda_handler({'operation': 'get_event_count'}, mock_context)

        settings = mock_build.call_args.args[0]
        assert settings.api_key == 'test-key'
        assert settings.base_url == 'https://example.test/discovery/v2'
        assert settings.cache_ttl_minutes == 15

    def test_unknown_operation(self, mock_env, mock_context):
        """Test an unknown operation is rejected with 400."""
        response = lambda_handler({'operation': 'delete_everything'}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['message'] == 'Unknown operation'
        assert 'is_event_family_friendly' in body['operations']

    @patch('lambda_function.build_finder')
    def test_missing_parameter(self, mock_build, finder, mock_env, mock_context):
        """Test a missing parameter is rejected with 400."""
        mock_build.return_value = finder

        response = lambda_handler({'operation': 'get_events_by_venue'}, mock_context)

        assert response['statusCode'] == 400
        assert 'venue' in json.loads(response['body'])['error']

    @patch('lambda_function.build_finder')
    def test_invalid_region(self, mock_build, finder, mock_env, mock_context):
        """Test a non-numeric region is rejected with 400."""
        mock_build.return_value = finder

        response = lambda_handler({'operation': 'get_events', 'region': 'toronto'}, mock_context)

        assert response['statusCode'] == 400

    @patch('lambda_function.build_finder')
    def test_unexpected_error(self, mock_build, mock_env, mock_context):
        """Test error handling for unexpected failures."""
        broken = Mock()
        broken.event_count.side_effect = Exception('Unexpected error')
        mock_build.return_value = broken

        response = lambda_handler({'operation': 'get_event_count'}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Operation failed'
        assert 'Unexpected error' in body['error']
        assert body['error_type'] == 'Exception'
        assert 'duration_seconds' in body

    @patch('lambda_function.build_finder')
    def test_natural_language_operations(self, mock_build, finder, mock_env, mock_context):
        """Test the query-based operations are wired to the finder."""
        mock_build.return_value = finder

        artist = lambda_handler(
            {'operation': 'show_events_for_artist', 'query': 'show events for Feist in Toronto'},
            mock_context
        )
        when = lambda_handler(
            {'operation': 'when_is_event_for_artist', 'query': 'when is Feist'}, mock_context
        )
        family = lambda_handler(
            {'operation': 'is_event_family_friendly', 'query': ''}, mock_context
        )

        assert [e['id'] for e in json.loads(json.loads(artist['body'])['result'])] == ['e2']
        assert json.loads(when['body'])['result'].startswith('Upcoming events for Feist:')
        assert json.loads(family['body'])['result'] == 'No event name provided'


class TestBuildFinder:
    """Test cases for wiring."""

    def test_build_finder_wires_client(self):
        """Test the finder uses the configured client and TTL."""
        settings = Settings(api_key='k', base_url='https://example.test/v2', cache_ttl_minutes=5)

        finder = lambda_function.build_finder(settings)

        store = finder.aggregator.store
        assert store.ttl_seconds == 300
        assert store.fetcher.__self__.api_key == 'k'
        assert finder.detail_fetcher.__self__.base_url == 'https://example.test/v2'


class TestSetupLogging:
    """Test cases for logging configuration."""

    def test_setup_logging_json_format(self):
        """Test that logging is configured with JSON formatter."""
        setup_logging('DEBUG')

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)

    def test_json_formatter_includes_structured_fields(self):
        """Test extra fields are carried into the JSON line."""
        record = logging.LogRecord('test', logging.ERROR, __file__, 1, 'fetch failed', None, None)
        record.region = 527
        record.error_type = 'CatalogUnavailableError'

        data = json.loads(JsonFormatter().format(record))

        assert data['message'] == 'fetch failed'
        assert data['level'] == 'ERROR'
        assert data['region'] == 527
        assert data['error_type'] == 'CatalogUnavailableError'

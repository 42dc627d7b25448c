import json
from types import SimpleNamespace
from urllib.parse import parse_qs

import openai
import pytest

import ai_search


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def fake_openai(app, ctx, monkeypatch):
    monkeypatch.setitem(app.config, 'OPENAI_API_KEY', 'sk-test')

    def install(content=None, error=None):
        completions = FakeCompletions(json.dumps(content) if isinstance(content, dict) else content, error)
        client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
        monkeypatch.setattr(ai_search, 'get_client', lambda: client)
        return completions
    return install


SEARCH_ANSWER = {
    'searchQuery': 'black wireless headphones',
    'filters': {
        'categories': ['Electronics'],
        'attributes': ['wireless'],
        'colors': ['Black'],
        'priceRange': {'max': 100},
        'intent': 'commuting',
    },
    'confidence': 0.92,
}


def test_analyze_search_query(fake_openai):
    completions = fake_openai(SEARCH_ANSWER)

    result = ai_search.analyze_search_query('black wireless headphones under $100')

    assert result['success']
    assert result['search_query'] == 'black wireless headphones'
    assert result['confidence'] == 0.92
    assert result['filters']['price_range'] == {'min': None, 'max': 100.0}
    assert result['filters']['brands'] == []
    assert result['filters']['intent'] == 'commuting'

    call = completions.calls[0]
    assert call['model'] == 'gpt-4o-mini'
    assert call['response_format'] == {'type': 'json_object'}


def test_analyze_without_api_key(ctx):
    assert ai_search.analyze_search_query('shoes') == {'success': False, 'error': 'OpenAI API key not configured'}


def test_service_error_falls_back_to_raw_query(fake_openai):
    fake_openai(error=openai.OpenAIError('service down'))

    result = ai_search.analyze_search_query('red shoes')

    assert result['success'] is False
    assert result['search_query'] == 'red shoes'
    assert result['confidence'] == 0.1


def test_invalid_json_is_an_error(fake_openai):
    fake_openai('not json at all')
    assert ai_search.analyze_search_query('red shoes')['error'] == 'Failed to analyze search query'


def test_process_search_query_short_input(ctx):
    assert ai_search.process_search_query('  ')['error'] == 'Empty query'
    result = ai_search.process_search_query('ab')
    assert result['error'] == 'Query too short'
    assert result['fallback_to_text'] is True


def test_process_search_query_caches_answers(fake_openai):
    completions = fake_openai(SEARCH_ANSWER)

    first = ai_search.process_search_query('Black Headphones')
    second = ai_search.process_search_query('black headphones ')

    assert first['success'] and second['success']
    assert first['processed_query'] == 'AI processed: Electronics, wireless'
    assert len(completions.calls) == 1


def test_failures_are_not_cached(fake_openai):
    fake_openai(error=openai.OpenAIError('service down'))
    assert ai_search.process_search_query('desk lamp')['fallback_to_text'] is True

    completions = fake_openai(SEARCH_ANSWER)
    assert ai_search.process_search_query('desk lamp')['success']
    assert len(completions.calls) == 1


def test_scalar_filter_values_are_wrapped(fake_openai):
    fake_openai({'searchQuery': 'mug', 'filters': {'colors': 5, 'categories': 'Kitchen', 'sizes': None}})

    result = ai_search.process_search_query('blue mug')

    assert result['success']
    assert result['filters']['colors'] == ['5']
    assert result['filters']['categories'] == ['Kitchen']
    assert result['filters']['sizes'] == []


def test_cached_answers_are_per_model(app, fake_openai, monkeypatch):
    completions = fake_openai(SEARCH_ANSWER)

    ai_search.process_search_query('desk lamp')
    monkeypatch.setitem(app.config, 'AI_SEARCH_MODEL', 'gpt-4o')
    ai_search.process_search_query('desk lamp')
    ai_search.process_search_query('desk lamp')

    assert [call['model'] for call in completions.calls] == ['gpt-4o-mini', 'gpt-4o']


def test_search_with_image(fake_openai):
    completions = fake_openai({'searchQuery': 'red sneakers', 'filters': {'colors': ['Red']}})

    result = ai_search.search_with_image('aGVsbG8=', 'image/png')

    assert result['filters']['colors'] == ['Red']
    assert result['confidence'] == 0.5
    image_part = completions.calls[0]['messages'][1]['content'][1]
    assert image_part['image_url']['url'] == 'data:image/png;base64,aGVsbG8='


def test_search_with_ai_requires_query(ctx):
    assert ai_search.search_with_ai('   ')['error'] == 'Search query is required'
    assert ai_search.search_with_image('')['error'] == 'Image is required'


def test_filters_round_trip_through_query_string():
    filters = ai_search.normalize_filters(SEARCH_ANSWER['filters'])

    params = ai_search.filters_to_search_params(filters, 0.92)
    parsed = {k: v[0] for k, v in parse_qs(params).items()}

    assert parsed['categories'] == 'Electronics'
    assert parsed['maxPrice'] == '100'
    assert 'minPrice' not in parsed
    assert parsed['aiProcessed'] == 'true'

    restored = ai_search.search_params_to_filters(parsed)
    assert restored['colors'] == ['Black']
    assert restored['price_range'] == {'min': None, 'max': 100.0}
    assert restored['confidence'] == 0.92


def test_no_filter_params():
    assert ai_search.search_params_to_filters({'q': 'lamp'}) is None


def test_analyze_product_image(fake_openai, seller, customer):
    fake_openai({
        'title': 'Canvas Backpack',
        'category': 'Bags',
        'subcategory': 'Backpacks',
        'colors': ['Gray'],
        'features': ['Water resistant'],
        'tags': ['travel'],
        'searchKeywords': ['backpack'],
        'brand': 'Trail',
    })

    assert ai_search.analyze_product_image(customer, 'aGVsbG8=')['error'] == \
        'Unauthorized - Seller access required'

    result = ai_search.analyze_product_image(seller, 'aGVsbG8=', prompt='for hikers')

    assert result['confidence'] == ai_search.PRODUCT_ANALYSIS_CONFIDENCE
    metadata = result['metadata']
    assert metadata['category_hierarchy'] == ['Bags', 'Backpacks']
    assert metadata['attributes']['brand'] == 'Trail'
    assert metadata['semantic_tags'] == ['Water resistant', 'Gray']
    assert metadata['search_boost_terms'] == ['Canvas Backpack', 'Bags', 'Water resistant']

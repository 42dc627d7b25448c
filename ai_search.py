"""
AI-assisted product search.

Text and image queries are sent to an OpenAI chat model in JSON mode and
the answer is mapped onto catalog filters. The model only ever suggests
filters; the catalog query itself runs locally.
"""
import base64
import json
import logging
from functools import lru_cache
from urllib.parse import urlencode

import openai
from flask import current_app
from openai import OpenAI

from permissions import SELLER_REQUIRED, is_seller

SEARCH_SYSTEM_PROMPT = """You are an AI assistant for an e-commerce platform called StuffHunt. Your job is to analyze user search queries (text or image descriptions) and convert them into structured search filters.

Available product data context:
- Categories: Electronics, Clothing, Home & Garden, Sports, Books, Beauty, Automotive, etc.
- Common brands: Nike, Adidas, Apple, Samsung, Sony, Canon, Dell, HP, etc.
- Colors: Black, White, Red, Blue, Green, Yellow, Pink, Purple, Orange, Brown, Gray, etc.
- Sizes: XS, S, M, L, XL, XXL, 28, 30, 32, 34, 36, 38, 40, 42, etc.

Return a JSON object with the following structure:
{
  "searchQuery": "refined search terms",
  "filters": {
    "categories": ["category1"],
    "attributes": ["attribute1"],
    "colors": ["color1"],
    "sizes": ["size1"],
    "brands": ["brand1"],
    "priceRange": {"min": number, "max": number},
    "intent": "short description of the use case"
  },
  "confidence": 0.85
}

Rules:
1. Always include a refined searchQuery that captures the main intent
2. Only include filters that are explicitly mentioned or strongly implied
3. Use standard color names (Black, White, Red, etc.) and broad categories (Electronics, Clothing, etc.)
4. Only include a price range when one is mentioned or strongly implied
5. Confidence is 0.0-1.0 and reflects how certain the interpretation is

Examples:
- "black wireless headphones under $100" -> categories: ["Electronics"], colors: ["Black"], priceRange: {"max": 100}
- "red nike running shoes size 10" -> categories: ["Sports"], colors: ["Red"], brands: ["Nike"], sizes: ["10"]
- "laptop for gaming" -> categories: ["Electronics"], attributes: ["gaming"]
"""

IMAGE_SEARCH_PROMPT = SEARCH_SYSTEM_PROMPT + """
For image analysis, describe what you see in the image and convert that description into search filters. Focus on the product type and category, visible colors, the brand if visible, style or attributes and any text in the image.
"""

PRODUCT_ANALYSIS_PROMPT = """Analyze this product image and extract detailed information. {context}

Respond with a JSON object in the following format:
{{
  "title": "Clear, SEO-friendly product name",
  "shortDescription": "Brief 1-2 sentence description for listings",
  "detailedDescription": "Comprehensive description with features and benefits",
  "category": "Primary product category",
  "subcategory": "Specific subcategory if applicable",
  "targetAgeGroup": "Target age group (if applicable)",
  "suggestedSizes": ["size options if applicable"],
  "colors": ["visible colors"],
  "materials": ["materials if identifiable"],
  "brand": "Brand name if visible or identifiable",
  "features": ["key features and benefits"],
  "tags": ["descriptive tags for search"],
  "searchKeywords": ["SEO keywords"]
}}

Be specific about visible details. When unsure, give your best estimate.
"""

MIN_QUERY_LENGTH = 3
PRODUCT_ANALYSIS_CONFIDENCE = 0.85
FILTER_LISTS = ('categories', 'attributes', 'colors', 'sizes', 'brands')


class AISearchError(Exception):
    pass


def get_client():
    return OpenAI(api_key=current_app.config['OPENAI_API_KEY'])


def is_configured():
    return bool(current_app.config.get('OPENAI_API_KEY'))


def _complete_json(model, messages, max_tokens=500):
    """Run a JSON-mode chat completion and return the parsed object."""
    try:
        completion = get_client().chat.completions.create(
            model=model,
            messages=messages,
            temperature=0.3,
            max_tokens=max_tokens,
            response_format={'type': 'json_object'},
        )
    except openai.OpenAIError as e:
        raise AISearchError(str(e)) from e

    content = completion.choices[0].message.content if completion.choices else None
    if not content:
        raise AISearchError('No response from AI')
    try:
        parsed = json.loads(content)
    except ValueError as e:
        raise AISearchError('Invalid JSON response from AI') from e
    if not isinstance(parsed, dict):
        raise AISearchError('Invalid AI response structure')
    return parsed


def _number(value):
    try:
        return float(value) if value not in (None, '') else None
    except (TypeError, ValueError):
        return None


def normalize_filters(raw):
    """Map the model's filter object onto the catalog's filter names."""
    raw = raw if isinstance(raw, dict) else {}
    filters = {}
    for key in FILTER_LISTS:
        values = raw.get(key) or []
        if not isinstance(values, (list, tuple)):
            values = [values]
        filters[key] = [str(v).strip() for v in values if str(v).strip()]

    price_range = raw.get('priceRange') or raw.get('price_range') or {}
    if isinstance(price_range, dict):
        low, high = _number(price_range.get('min')), _number(price_range.get('max'))
        if low or high:
            filters['price_range'] = {'min': low, 'max': high}
    if raw.get('intent'):
        filters['intent'] = str(raw['intent'])
    return filters


def _confidence(parsed):
    value = _number(parsed.get('confidence'))
    return min(max(value, 0.0), 1.0) if value else 0.5


def analyze_search_query(query, model=None):
    if not is_configured():
        return {'success': False, 'error': 'OpenAI API key not configured'}

    try:
        parsed = _complete_json(model or current_app.config['AI_SEARCH_MODEL'], [
            {'role': 'system', 'content': SEARCH_SYSTEM_PROMPT},
            {'role': 'user', 'content': f'Analyze this search query: "{query}"'},
        ])
    except AISearchError:
        logging.exception("AI search analysis error")
        # Plain text search still works with the raw query
        return {'success': False, 'error': 'Failed to analyze search query',
                'search_query': query, 'confidence': 0.1}

    return {
        'success': True,
        'search_query': parsed.get('searchQuery') or query,
        'filters': normalize_filters(parsed.get('filters')),
        'confidence': _confidence(parsed),
    }


def analyze_image_search(image_base64, content_type='image/jpeg'):
    if not is_configured():
        return {'success': False, 'error': 'OpenAI API key not configured'}

    try:
        parsed = _complete_json(current_app.config['AI_VISION_MODEL'], [
            {'role': 'system', 'content': IMAGE_SEARCH_PROMPT},
            {'role': 'user', 'content': [
                {'type': 'text', 'text': 'Analyze this product image and convert it to search filters:'},
                {'type': 'image_url', 'image_url': {'url': f'data:{content_type};base64,{image_base64}'}},
            ]},
        ])
    except AISearchError:
        logging.exception("AI image analysis error")
        return {'success': False, 'error': 'Failed to analyze image'}

    return {
        'success': True,
        'search_query': parsed.get('searchQuery') or 'product search',
        'filters': normalize_filters(parsed.get('filters')),
        'confidence': _confidence(parsed),
    }


@lru_cache(maxsize=256)
def _cached_filters(query, model):
    # Raises on failure so that failed lookups are not cached
    result = analyze_search_query(query, model)
    if not result['success']:
        raise AISearchError(result['error'])
    return json.dumps(result)


def process_search_query(query):
    """Turn a free-text query into filters, skipping the model for trivial input."""
    if not query or not query.strip():
        return {'success': False, 'original_query': query, 'error': 'Empty query', 'fallback_to_text': True}

    normalized = query.strip().lower()
    if len(normalized) < MIN_QUERY_LENGTH:
        return {'success': False, 'original_query': query, 'error': 'Query too short', 'fallback_to_text': True}

    try:
        result = json.loads(_cached_filters(normalized, current_app.config['AI_SEARCH_MODEL']))
    except AISearchError as e:
        return {'success': False, 'original_query': query, 'error': str(e), 'fallback_to_text': True}

    filters = result['filters']
    summary = ', '.join(filters.get('categories', []) + filters.get('attributes', []))
    return {
        'success': True,
        'original_query': query,
        'processed_query': f'AI processed: {summary}'.strip(),
        'search_query': result['search_query'],
        'filters': filters,
        'confidence': result['confidence'],
    }


def search_with_ai(query):
    if not query or not query.strip():
        return {'success': False, 'error': 'Search query is required'}
    return analyze_search_query(query.strip())


def search_with_image(image_base64, content_type='image/jpeg'):
    if not image_base64:
        return {'success': False, 'error': 'Image is required'}
    return analyze_image_search(image_base64, content_type)


def filters_to_search_params(filters, confidence=0):
    """Encode filters as a query string for the search results page."""
    params = []
    for key in FILTER_LISTS:
        if filters.get(key):
            params.append((key, ','.join(filters[key])))
    price_range = filters.get('price_range') or {}
    if price_range.get('min'):
        params.append(('minPrice', f"{price_range['min']:g}"))
    if price_range.get('max'):
        params.append(('maxPrice', f"{price_range['max']:g}"))
    if filters.get('intent'):
        params.append(('intent', filters['intent']))
    params.append(('aiProcessed', 'true'))
    params.append(('confidence', str(confidence)))
    return urlencode(params)


def search_params_to_filters(args):
    """Inverse of filters_to_search_params; None when the args carry no filter."""
    filters = {key: [v for v in (args.get(key) or '').split(',') if v] for key in FILTER_LISTS}
    low, high = _number(args.get('minPrice')), _number(args.get('maxPrice'))
    if not any(filters.values()) and not low and not high:
        return None
    if low or high:
        filters['price_range'] = {'min': low, 'max': high}
    filters['confidence'] = _number(args.get('confidence')) or 0
    return filters


def image_to_base64(file):
    """Base64 of an uploaded file's bytes, without a data URL prefix."""
    stream = getattr(file, 'stream', file)
    return base64.b64encode(stream.read()).decode('utf-8')


def analyze_product_image(user, image_base64, content_type='image/jpeg', prompt=None):
    """Draft a product listing from a photo for the seller upload form."""
    if not is_seller(user):
        return {'success': False, 'error': SELLER_REQUIRED, 'confidence': 0}
    if not is_configured():
        return {'success': False, 'error': 'OpenAI API key not configured', 'confidence': 0}

    text = PRODUCT_ANALYSIS_PROMPT.format(context=f'Additional context: {prompt}' if prompt else '')
    try:
        analysis = _complete_json(current_app.config['AI_VISION_MODEL'], [
            {'role': 'user', 'content': [
                {'type': 'text', 'text': text},
                {'type': 'image_url', 'image_url': {'url': f'data:{content_type};base64,{image_base64}',
                                                    'detail': 'high'}},
            ]},
        ], max_tokens=1000)
    except AISearchError:
        logging.exception("Error analyzing product image")
        return {'success': False, 'error': 'Failed to analyze image', 'confidence': 0}

    def values(key):
        v = analysis.get(key) or []
        return v if isinstance(v, list) else [v]

    metadata = {
        'primary_keywords': values('searchKeywords'),
        'secondary_keywords': values('tags'),
        'semantic_tags': values('features') + values('colors') + values('materials'),
        'category_hierarchy': [c for c in (analysis.get('category'), analysis.get('subcategory')) if c],
        'attributes': {
            'colors': values('colors'),
            'materials': values('materials'),
            'sizes': values('suggestedSizes'),
            'target_age': analysis.get('targetAgeGroup') or '',
            'brand': analysis.get('brand') or '',
        },
        'search_boost_terms': [t for t in [analysis.get('title'), analysis.get('category')] + values('features') if t],
    }
    return {'success': True, 'analysis': analysis, 'metadata': metadata, 'confidence': PRODUCT_ANALYSIS_CONFIDENCE}

"""
Product type classification and the lookup tables that decide how a
product's details are presented.

A product type is inferred from free-text category, subcategory and name
with ordered substring checks (first match wins). Every type maps to a
detail component, display labels and a set of specification fields.
"""
import copy
import enum
import json
import re


class ProductType(str, enum.Enum):
    ELECTRONICS_LAPTOP = 'ELECTRONICS_LAPTOP'
    ELECTRONICS_SMARTPHONE = 'ELECTRONICS_SMARTPHONE'
    ELECTRONICS_HEADPHONES = 'ELECTRONICS_HEADPHONES'
    ELECTRONICS_CAMERA = 'ELECTRONICS_CAMERA'
    ELECTRONICS_TABLET = 'ELECTRONICS_TABLET'
    ELECTRONICS_SMARTWATCH = 'ELECTRONICS_SMARTWATCH'
    ELECTRONICS_GAMING = 'ELECTRONICS_GAMING'
    ELECTRONICS_AUDIO = 'ELECTRONICS_AUDIO'
    ELECTRONICS_ACCESSORIES = 'ELECTRONICS_ACCESSORIES'

    CLOTHING_APPAREL = 'CLOTHING_APPAREL'
    CLOTHING_FOOTWEAR = 'CLOTHING_FOOTWEAR'
    CLOTHING_ACCESSORIES = 'CLOTHING_ACCESSORIES'
    CLOTHING_ACTIVEWEAR = 'CLOTHING_ACTIVEWEAR'
    CLOTHING_FORMAL = 'CLOTHING_FORMAL'
    CLOTHING_CASUAL = 'CLOTHING_CASUAL'

    HOME_FURNITURE = 'HOME_FURNITURE'
    HOME_KITCHEN = 'HOME_KITCHEN'
    HOME_DECOR = 'HOME_DECOR'
    HOME_BEDDING = 'HOME_BEDDING'
    HOME_BATHROOM = 'HOME_BATHROOM'
    HOME_GARDEN = 'HOME_GARDEN'
    HOME_APPLIANCES = 'HOME_APPLIANCES'

    SPORTS_FITNESS = 'SPORTS_FITNESS'
    SPORTS_OUTDOOR = 'SPORTS_OUTDOOR'
    SPORTS_TEAM_SPORTS = 'SPORTS_TEAM_SPORTS'
    SPORTS_WATER_SPORTS = 'SPORTS_WATER_SPORTS'

    BOOKS_FICTION = 'BOOKS_FICTION'
    BOOKS_NON_FICTION = 'BOOKS_NON_FICTION'
    BOOKS_EDUCATIONAL = 'BOOKS_EDUCATIONAL'
    BOOKS_CHILDREN = 'BOOKS_CHILDREN'

    BEAUTY_SKINCARE = 'BEAUTY_SKINCARE'
    BEAUTY_MAKEUP = 'BEAUTY_MAKEUP'
    BEAUTY_HAIRCARE = 'BEAUTY_HAIRCARE'
    BEAUTY_FRAGRANCE = 'BEAUTY_FRAGRANCE'

    AUTOMOTIVE_PARTS = 'AUTOMOTIVE_PARTS'
    AUTOMOTIVE_ACCESSORIES = 'AUTOMOTIVE_ACCESSORIES'
    AUTOMOTIVE_TOOLS = 'AUTOMOTIVE_TOOLS'

    GENERIC_PRODUCT = 'GENERIC_PRODUCT'


def _mapping(component, display_name, category, subcategory):
    return {'component': component, 'display_name': display_name,
            'category': category, 'subcategory': subcategory}


PRODUCT_TYPE_MAPPINGS = {
    ProductType.ELECTRONICS_LAPTOP: _mapping('ElectronicsLaptop', 'Laptop', 'Electronics', 'Laptops'),
    ProductType.ELECTRONICS_SMARTPHONE: _mapping('ElectronicsSmartphone', 'Smartphone', 'Electronics', 'Smartphones'),
    ProductType.ELECTRONICS_HEADPHONES: _mapping('ElectronicsAudio', 'Headphones', 'Electronics', 'Audio'),
    ProductType.ELECTRONICS_CAMERA: _mapping('ElectronicsCamera', 'Camera', 'Electronics', 'Cameras'),
    ProductType.ELECTRONICS_TABLET: _mapping('ElectronicsTablet', 'Tablet', 'Electronics', 'Tablets'),
    ProductType.ELECTRONICS_SMARTWATCH: _mapping('ElectronicsSmartwatch', 'Smartwatch', 'Electronics', 'Wearables'),
    ProductType.ELECTRONICS_GAMING: _mapping('ElectronicsGaming', 'Gaming Device', 'Electronics', 'Gaming'),
    ProductType.ELECTRONICS_AUDIO: _mapping('ElectronicsAudio', 'Audio Device', 'Electronics', 'Audio'),
    ProductType.ELECTRONICS_ACCESSORIES: _mapping('ElectronicsAccessories', 'Electronics Accessory', 'Electronics', 'Accessories'),

    ProductType.CLOTHING_APPAREL: _mapping('ClothingApparel', 'Apparel', 'Clothing', 'Apparel'),
    ProductType.CLOTHING_FOOTWEAR: _mapping('ClothingFootwear', 'Footwear', 'Clothing', 'Shoes'),
    ProductType.CLOTHING_ACCESSORIES: _mapping('ClothingAccessories', 'Clothing Accessory', 'Clothing', 'Accessories'),
    ProductType.CLOTHING_ACTIVEWEAR: _mapping('ClothingActivewear', 'Activewear', 'Clothing', 'Activewear'),
    ProductType.CLOTHING_FORMAL: _mapping('ClothingFormal', 'Formal Wear', 'Clothing', 'Formal'),
    ProductType.CLOTHING_CASUAL: _mapping('ClothingCasual', 'Casual Wear', 'Clothing', 'Casual'),

    ProductType.HOME_FURNITURE: _mapping('HomeFurniture', 'Furniture', 'Home & Garden', 'Furniture'),
    ProductType.HOME_KITCHEN: _mapping('HomeKitchen', 'Kitchen Item', 'Home & Garden', 'Kitchen'),
    ProductType.HOME_DECOR: _mapping('HomeDecor', 'Home Decor', 'Home & Garden', 'Decor'),
    ProductType.HOME_BEDDING: _mapping('HomeBedding', 'Bedding', 'Home & Garden', 'Bedding'),
    ProductType.HOME_BATHROOM: _mapping('HomeBathroom', 'Bathroom Item', 'Home & Garden', 'Bathroom'),
    ProductType.HOME_GARDEN: _mapping('HomeGarden', 'Garden Item', 'Home & Garden', 'Garden'),
    ProductType.HOME_APPLIANCES: _mapping('HomeAppliances', 'Home Appliance', 'Home & Garden', 'Appliances'),

    ProductType.SPORTS_FITNESS: _mapping('SportsFitness', 'Fitness Equipment', 'Sports & Outdoors', 'Fitness'),
    ProductType.SPORTS_OUTDOOR: _mapping('SportsOutdoor', 'Outdoor Gear', 'Sports & Outdoors', 'Outdoor'),
    ProductType.SPORTS_TEAM_SPORTS: _mapping('SportsTeam', 'Team Sports', 'Sports & Outdoors', 'Team Sports'),
    ProductType.SPORTS_WATER_SPORTS: _mapping('SportsWater', 'Water Sports', 'Sports & Outdoors', 'Water Sports'),

    ProductType.BOOKS_FICTION: _mapping('BooksFiction', 'Fiction Book', 'Books & Media', 'Fiction'),
    ProductType.BOOKS_NON_FICTION: _mapping('BooksNonFiction', 'Non-Fiction Book', 'Books & Media', 'Non-Fiction'),
    ProductType.BOOKS_EDUCATIONAL: _mapping('BooksEducational', 'Educational Book', 'Books & Media', 'Educational'),
    ProductType.BOOKS_CHILDREN: _mapping('BooksChildren', "Children's Book", 'Books & Media', 'Children'),

    ProductType.BEAUTY_SKINCARE: _mapping('BeautySkincare', 'Skincare Product', 'Beauty & Personal Care', 'Skincare'),
    ProductType.BEAUTY_MAKEUP: _mapping('BeautyMakeup', 'Makeup Product', 'Beauty & Personal Care', 'Makeup'),
    ProductType.BEAUTY_HAIRCARE: _mapping('BeautyHaircare', 'Haircare Product', 'Beauty & Personal Care', 'Haircare'),
    ProductType.BEAUTY_FRAGRANCE: _mapping('BeautyFragrance', 'Fragrance', 'Beauty & Personal Care', 'Fragrance'),

    ProductType.AUTOMOTIVE_PARTS: _mapping('AutomotiveParts', 'Auto Parts', 'Automotive', 'Parts'),
    ProductType.AUTOMOTIVE_ACCESSORIES: _mapping('AutomotiveAccessories', 'Auto Accessories', 'Automotive', 'Accessories'),
    ProductType.AUTOMOTIVE_TOOLS: _mapping('AutomotiveTools', 'Auto Tools', 'Automotive', 'Tools'),

    ProductType.GENERIC_PRODUCT: _mapping('GenericProduct', 'Product', 'General', 'Product'),
}


# (category keywords, [(subcategory keywords, name keywords, type), ...], fallback)
_DETECTION_RULES = [
    (('electronics', 'tech'), [
        (('laptop',), ('laptop',), ProductType.ELECTRONICS_LAPTOP),
        (('phone', 'smartphone'), ('phone',), ProductType.ELECTRONICS_SMARTPHONE),
        (('headphone', 'audio'), ('headphone',), ProductType.ELECTRONICS_HEADPHONES),
        (('camera',), ('camera',), ProductType.ELECTRONICS_CAMERA),
        (('tablet',), ('tablet',), ProductType.ELECTRONICS_TABLET),
        (('watch',), ('smartwatch',), ProductType.ELECTRONICS_SMARTWATCH),
        (('gaming',), ('gaming',), ProductType.ELECTRONICS_GAMING),
    ], ProductType.ELECTRONICS_ACCESSORIES),
    (('clothing', 'apparel', 'fashion'), [
        (('shoe', 'footwear'), ('shoe',), ProductType.CLOTHING_FOOTWEAR),
        (('active', 'sport'), ('athletic',), ProductType.CLOTHING_ACTIVEWEAR),
        (('formal',), ('formal',), ProductType.CLOTHING_FORMAL),
        (('accessory',), ('accessory',), ProductType.CLOTHING_ACCESSORIES),
    ], ProductType.CLOTHING_APPAREL),
    (('home', 'garden', 'furniture'), [
        (('furniture',), ('furniture',), ProductType.HOME_FURNITURE),
        (('kitchen',), ('kitchen',), ProductType.HOME_KITCHEN),
        (('decor',), ('decor',), ProductType.HOME_DECOR),
        (('bedding',), ('bedding',), ProductType.HOME_BEDDING),
        (('bathroom',), ('bathroom',), ProductType.HOME_BATHROOM),
        (('garden',), ('garden',), ProductType.HOME_GARDEN),
        (('appliance',), ('appliance',), ProductType.HOME_APPLIANCES),
    ], ProductType.HOME_DECOR),
    (('sport', 'fitness', 'outdoor'), [
        (('fitness',), ('fitness',), ProductType.SPORTS_FITNESS),
        (('outdoor',), ('outdoor',), ProductType.SPORTS_OUTDOOR),
        (('team',), ('team',), ProductType.SPORTS_TEAM_SPORTS),
        (('water',), ('water',), ProductType.SPORTS_WATER_SPORTS),
    ], ProductType.SPORTS_FITNESS),
    (('book', 'media'), [
        (('fiction',), ('fiction',), ProductType.BOOKS_FICTION),
        (('educational',), ('educational',), ProductType.BOOKS_EDUCATIONAL),
        (('children',), ('children',), ProductType.BOOKS_CHILDREN),
    ], ProductType.BOOKS_NON_FICTION),
    (('beauty', 'cosmetic', 'personal care'), [
        (('skincare',), ('skincare',), ProductType.BEAUTY_SKINCARE),
        (('makeup',), ('makeup',), ProductType.BEAUTY_MAKEUP),
        (('hair',), ('hair',), ProductType.BEAUTY_HAIRCARE),
        (('fragrance', 'perfume'), ('perfume',), ProductType.BEAUTY_FRAGRANCE),
    ], ProductType.BEAUTY_SKINCARE),
    (('automotive', 'car', 'auto'), [
        (('parts',), ('parts',), ProductType.AUTOMOTIVE_PARTS),
        (('tools',), ('tools',), ProductType.AUTOMOTIVE_TOOLS),
    ], ProductType.AUTOMOTIVE_ACCESSORIES),
]


def _contains_any(text, keywords):
    return any(k in text for k in keywords)


def detect_product_type(category=None, subcategory=None, product_name=None):
    """Infer a ProductType from free text. Without a category the product is generic."""
    if not category:
        return ProductType.GENERIC_PRODUCT

    category = category.lower()
    subcategory = (subcategory or '').lower()
    name = (product_name or '').lower()

    for category_keywords, rules, fallback in _DETECTION_RULES:
        if not _contains_any(category, category_keywords):
            continue
        for sub_keywords, name_keywords, product_type in rules:
            if _contains_any(subcategory, sub_keywords) or _contains_any(name, name_keywords):
                return product_type
        return fallback

    return ProductType.GENERIC_PRODUCT


def parse_product_type(value):
    """Return the ProductType named by value, or None when it is not a known type."""
    if not value:
        return None
    if isinstance(value, ProductType):
        return value
    try:
        return ProductType(str(value).strip().upper())
    except ValueError:
        return None


def get_product_component(product_type):
    mapping = PRODUCT_TYPE_MAPPINGS.get(parse_product_type(product_type))
    return mapping['component'] if mapping else 'GenericProduct'


def get_product_type_display_name(product_type):
    mapping = PRODUCT_TYPE_MAPPINGS.get(parse_product_type(product_type))
    return mapping['display_name'] if mapping else 'Product'


def _spec(key, label, unit=None):
    return {'key': key, 'label': label, 'unit': unit}


def _section(title, specs, is_list=False):
    return {'title': title, 'specs': specs, 'is_list': is_list}


SPEC_MAPPINGS = {
    ProductType.ELECTRONICS_LAPTOP: {
        'key_specs': [
            _spec('processor', 'Processor'),
            _spec('ram', 'RAM'),
            _spec('storage', 'Storage'),
            _spec('display.size', 'Display'),
            _spec('battery', 'Battery'),
            _spec('weight', 'Weight', 'kg'),
        ],
        'detailed_sections': [
            _section('Performance', ['processor', 'ram', 'storage', 'graphics']),
            _section('Display & Design', ['display.size', 'display.resolution', 'display.type', 'weight']),
            _section('Connectivity', ['ports', 'connectivity'], is_list=True),
        ],
    },
    ProductType.ELECTRONICS_SMARTPHONE: {
        'key_specs': [
            _spec('screenSize', 'Display', '"'),
            _spec('camera.main', 'Main Camera'),
            _spec('battery', 'Battery'),
            _spec('processor', 'Processor'),
            _spec('os', 'OS'),
        ],
        'detailed_sections': [
            _section('Performance', ['os', 'processor', 'ram', 'battery']),
            _section('Display', ['screenSize', 'display.type', 'display.resolution']),
            _section('Camera', ['camera.main', 'camera.front', 'camera.features'], is_list=True),
            _section('Storage & Connectivity', ['storage', 'connectivity'], is_list=True),
        ],
    },
    ProductType.ELECTRONICS_HEADPHONES: {
        'key_specs': [
            _spec('type', 'Type'),
            _spec('connectivity', 'Connectivity'),
            _spec('battery', 'Battery'),
            _spec('weight', 'Weight', 'g'),
        ],
        'detailed_sections': [
            _section('Audio Specifications', ['type', 'connectivity', 'battery', 'weight']),
        ],
    },
    ProductType.CLOTHING_APPAREL: {
        'key_specs': [
            _spec('material', 'Material'),
            _spec('fit', 'Fit'),
            _spec('season', 'Season'),
            _spec('style', 'Style'),
        ],
        'detailed_sections': [
            _section('Material & Fabric', ['material', 'pattern', 'occasion']),
            _section('Style & Fit', ['fit', 'style', 'neckline', 'sleeves']),
            _section('Care Instructions', ['care'], is_list=True),
        ],
    },
    ProductType.CLOTHING_FOOTWEAR: {
        'key_specs': [
            _spec('material', 'Material'),
            _spec('sole', 'Sole Type'),
            _spec('closure', 'Closure'),
            _spec('occasion', 'Occasion'),
        ],
        'detailed_sections': [
            _section('Construction', ['material', 'sole', 'closure', 'heel']),
            _section('Style & Fit', ['style', 'occasion', 'width', 'arch']),
        ],
    },
    ProductType.HOME_FURNITURE: {
        'key_specs': [
            _spec('material', 'Material'),
            _spec('dimensions', 'Dimensions'),
            _spec('weight', 'Weight', 'kg'),
            _spec('assembly', 'Assembly'),
        ],
        'detailed_sections': [
            _section('Construction', ['material', 'finish', 'assembly']),
            _section('Dimensions & Weight', ['dimensions', 'weight', 'capacity']),
        ],
    },
    ProductType.SPORTS_FITNESS: {
        'key_specs': [
            _spec('weight', 'Weight', 'kg'),
            _spec('material', 'Material'),
            _spec('resistance', 'Resistance'),
            _spec('adjustable', 'Adjustable'),
        ],
        'detailed_sections': [
            _section('Specifications', ['weight', 'material', 'resistance', 'adjustable']),
            _section('Features', ['features', 'accessories'], is_list=True),
        ],
    },
}

GENERIC_SPECS = {
    'key_specs': [
        _spec('material', 'Material'),
        _spec('weight', 'Weight', 'kg'),
        _spec('dimensions', 'Dimensions'),
    ],
    'detailed_sections': [
        _section('Product Information', ['material', 'weight', 'dimensions', 'brand']),
    ],
}


DEFAULT_SCHEMAS = {
    ProductType.ELECTRONICS_LAPTOP: {
        'processor': '',
        'ram': '',
        'storage': '',
        'display': {'size': '', 'resolution': '', 'type': ''},
        'graphics': '',
        'battery': '',
        'ports': [],
        'connectivity': [],
    },
    ProductType.ELECTRONICS_SMARTPHONE: {
        'os': '',
        'screenSize': 0,
        'camera': {'main': '', 'front': '', 'features': []},
        'battery': '',
        'storage': [],
        'connectivity': [],
        'processor': '',
        'ram': '',
    },
    ProductType.CLOTHING_APPAREL: {
        'material': '',
        'fit': 'Regular',
        'care': [],
        'season': 'All Season',
        'style': 'Casual',
        'neckline': '',
        'sleeves': '',
    },
}


def merge_with_default_schema(product_type, data):
    """Overlay user supplied attributes on the default attribute schema of a type."""
    merged = copy.deepcopy(DEFAULT_SCHEMAS.get(parse_product_type(product_type), {}))
    if isinstance(data, dict):
        merged.update(data)
    return merged


def get_value(obj, path):
    for key in path.split('.'):
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def format_value(value, unit=None):
    if not value:
        return 'Not specified'
    if isinstance(value, (list, tuple)):
        return ', '.join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return f'{value} {unit}' if unit else str(value)


def humanize_key(key):
    """'screenSize' -> 'Screen Size'"""
    spaced = re.sub(r'([A-Z])', r' \1', key)
    return spaced[:1].upper() + spaced[1:]


def build_specifications(product, product_type, detailed=False):
    """
    Resolve the specification fields to show for a product.

    Values are looked up in the product's ai_metadata first and then in the
    product fields themselves; empty values are left out.
    """
    specs = product.get('ai_metadata') or {}
    mapping = SPEC_MAPPINGS.get(parse_product_type(product_type), GENERIC_SPECS)

    def lookup(key):
        return get_value(specs, key) or get_value(product, key)

    if not detailed:
        key_specs = []
        for spec in mapping['key_specs']:
            value = lookup(spec['key'])
            if value:
                key_specs.append({'key': spec['key'], 'label': spec['label'],
                                  'value': format_value(value, spec['unit'])})
        return key_specs

    sections = []
    for section in mapping['detailed_sections']:
        rows = []
        for key in section['specs']:
            value = lookup(key)
            if not value:
                continue
            if section['is_list']:
                rows.append({'key': key, 'label': humanize_key(key),
                             'values': list(value) if isinstance(value, (list, tuple)) else [value]})
            else:
                rows.append({'key': key, 'label': humanize_key(key), 'value': format_value(value)})
        sections.append({'title': section['title'], 'is_list': section['is_list'], 'specs': rows})
    return sections

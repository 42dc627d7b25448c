from flask import Flask, render_template, redirect, url_for, request, flash, jsonify, abort, session
from flask_login import LoginManager, login_user, logout_user, login_required, current_user
from flask_bcrypt import Bcrypt
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf
from flask_talisman import Talisman
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from dotenv import load_dotenv
from models import db, User, Product, Category
from forms import LoginForm, RegisterForm, TwoFactorForm
from notifications import mail, send_mail
from permissions import AUTH_ERRORS
from spreadsheet import SpreadsheetError, parse_product_sheet
import accounts
import ai_search
import cart
import catalog
import contact
import merchant
import orders
import wishlist
import os
import logging
import pyotp
import qrcode
from io import BytesIO
import base64

# Load environment variables
load_dotenv()


def env_flag(name, default):
    return os.getenv(name, str(default)).strip().lower() in ('1', 'true', 'yes', 'on')


app = Flask(__name__)

# --- Configuration ---
app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'fallback_secret_key_CHANGE_THIS')
app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///database.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['MAX_CONTENT_LENGTH'] = 10 * 1024 * 1024 # spreadsheets and search images

# Secure Cookies (requires HTTPS unless disabled for local testing)
app.config['SESSION_COOKIE_SECURE'] = env_flag('SESSION_COOKIE_SECURE', True)
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Strict'
app.config['REMEMBER_COOKIE_SECURE'] = app.config['SESSION_COOKIE_SECURE']
app.config['REMEMBER_COOKIE_HTTPONLY'] = True

app.config['WTF_CSRF_ENABLED'] = env_flag('WTF_CSRF_ENABLED', True)
app.config['RATELIMIT_ENABLED'] = env_flag('RATELIMIT_ENABLED', True)

# AI search
app.config['OPENAI_API_KEY'] = os.getenv('OPENAI_API_KEY')
app.config['AI_SEARCH_MODEL'] = os.getenv('AI_SEARCH_MODEL', 'gpt-4o-mini')
app.config['AI_VISION_MODEL'] = os.getenv('AI_VISION_MODEL', 'gpt-4o')

# Mail
app.config['MAIL_SERVER'] = os.getenv('MAIL_SERVER', 'localhost')
app.config['MAIL_PORT'] = int(os.getenv('MAIL_PORT', '25'))
app.config['MAIL_USE_TLS'] = env_flag('MAIL_USE_TLS', False)
app.config['MAIL_USERNAME'] = os.getenv('MAIL_USERNAME')
app.config['MAIL_PASSWORD'] = os.getenv('MAIL_PASSWORD')
app.config['MAIL_DEFAULT_SENDER'] = os.getenv('MAIL_DEFAULT_SENDER', 'StuffHunt <noreply@stuffhunt.com>')
app.config['MAIL_SUPPRESS_SEND'] = env_flag('MAIL_SUPPRESS_SEND', False)
app.config['ADMIN_EMAIL'] = os.getenv('ADMIN_EMAIL', 'admin@stuffhunt.com')

# Initialize Extensions
db.init_app(app)
bcrypt = Bcrypt(app)
csrf = CSRFProtect(app)
mail.init_app(app)
login_manager = LoginManager(app)
login_manager.login_view = 'login'
login_manager.login_message_category = 'info'
login_manager.session_protection = 'strong' # Protect against session hijacking

# Content Security Policy (CSP)
csp = {
    'default-src': '\'self\'',
    'script-src': ['\'self\'', '\'unsafe-inline\''],
    'style-src': ['\'self\'', '\'unsafe-inline\'', 'https://fonts.googleapis.com'],
    'font-src': ['\'self\'', 'https://fonts.gstatic.com'],
    'img-src': ['\'self\'', 'data:', 'https:'] # product images are hosted by sellers
}

# Talisman for HTTP Headers (HSTS, XSS, Frame Options)
talisman = Talisman(
    app,
    content_security_policy=csp,
    force_https=False, # Set to True in production
    strict_transport_security=True,
    session_cookie_secure=app.config['SESSION_COOKIE_SECURE'],
    frame_options='DENY' # Prevent Clickjacking
)

# Rate Limiting
limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri="memory://"
)

# Logging
logging.basicConfig(filename=os.getenv('LOG_FILE', 'stuffhunt.log'), level=logging.INFO)

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


def redirect_for_role(user):
    if user.role == 'admin': return redirect(url_for('admin'))
    elif user.role == 'seller': return redirect(url_for('merchant_page'))
    else: return redirect(url_for('index'))


def pending_user():
    """User who passed the password step but has not finished two-factor auth."""
    user_id = session.get('pre_2fa_user_id')
    user = db.session.get(User, user_id) if user_id else None
    if user_id and not user:
        session.pop('pre_2fa_user_id', None)
    return user


def finish_login(user, message):
    login_user(user)
    session.pop('pre_2fa_user_id', None)
    flash(message, 'success')
    return redirect_for_role(user)


def qr_code_png(uri):
    buffered = BytesIO()
    qrcode.make(uri).save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode("utf-8")


def honeypot_tripped(form):
    if form.honeypot.data:
        logging.warning(f"Bot detected via honeypot from {request.remote_addr}")
        return True
    return False


# --- Pages ---

@app.route('/')
def index():
    return render_template('index.html',
                           products=catalog.get_featured_products(),
                           categories=catalog.get_categories()['categories'])

@app.route('/register', methods=['GET', 'POST'])
@limiter.limit("5 per minute")
def register():
    if current_user.is_authenticated:
        return redirect(url_for('index'))

    form = RegisterForm()
    if form.validate_on_submit():
        if honeypot_tripped(form):
            return redirect(url_for('index'))

        taken = User.query.filter((User.username == form.username.data) | (User.email == form.email.data)).first()
        if taken:
            flash('Username or email is already registered', 'danger')
        else:
            hashed_pw = bcrypt.generate_password_hash(form.password.data).decode('utf-8')
            user = User(username=form.username.data, email=form.email.data, password=hashed_pw,
                        role=form.role.data or 'customer')
            db.session.add(user)
            db.session.commit()
            logging.info(f"New {user.role} account registered: {user.username}")
            send_mail('Welcome to StuffHunt', [user.email], 'email/welcome.html', user=user)

            # Every account sets up two-factor authentication before its first login
            session['pre_2fa_user_id'] = user.id
            return redirect(url_for('setup_2fa'))

    return render_template('register.html', form=form)

@app.route('/login', methods=['GET', 'POST'])
@limiter.limit("5 per minute")
def login():
    if current_user.is_authenticated:
        return redirect(url_for('index'))

    form = LoginForm()
    if form.validate_on_submit():
        if honeypot_tripped(form):
            return redirect(url_for('index'))

        user = User.query.filter_by(username=form.username.data).first()
        if not user or not bcrypt.check_password_hash(user.password, form.password.data):
            logging.warning(f"Failed login for {form.username.data} from {request.remote_addr}")
            flash('Invalid username or password', 'danger')
            return render_template('login.html', form=form)

        session['pre_2fa_user_id'] = user.id
        return redirect(url_for('verify_2fa' if user.totp_secret else 'setup_2fa'))

    return render_template('login.html', form=form)

@app.route('/login/2fa', methods=['GET', 'POST'])
@limiter.limit("10 per minute")
def verify_2fa():
    user = pending_user()
    if not user:
        return redirect(url_for('login'))
    if not user.totp_secret:
        return redirect(url_for('setup_2fa'))

    form = TwoFactorForm()
    if form.validate_on_submit():
        if pyotp.TOTP(user.totp_secret).verify(form.token.data):
            logging.info(f"Two-factor login for {user.username}")
            return finish_login(user, 'Signed in successfully!')
        logging.warning(f"Invalid 2FA code for {user.username} from {request.remote_addr}")
        flash('Invalid verification code', 'danger')

    return render_template('verify_2fa.html', form=form)

@app.route('/setup-2fa', methods=['GET', 'POST'])
def setup_2fa():
    user = pending_user()
    if not user:
        return redirect(url_for('login'))
    if user.totp_secret:
        return redirect(url_for('verify_2fa'))

    # Secret lives in the session until the first code is confirmed
    secret = session.setdefault('temp_totp_secret', pyotp.random_base32())
    totp = pyotp.TOTP(secret)

    form = TwoFactorForm()
    if form.validate_on_submit():
        if totp.verify(form.token.data):
            user.totp_secret = secret
            db.session.commit()
            session.pop('temp_totp_secret', None)
            logging.info(f"2FA enabled for {user.username}")
            return finish_login(user, 'Two-factor authentication enabled!')
        flash('Invalid code, please try again', 'danger')

    qr_code = qr_code_png(totp.provisioning_uri(name=user.username, issuer_name="StuffHunt"))
    return render_template('setup_2fa.html', form=form, qr_code=qr_code, secret=secret)

@app.route('/logout')
@login_required
def logout():
    logging.info(f"User signed out: {current_user.username}")
    logout_user()
    return redirect(url_for('index'))

@app.route('/admin')
@login_required
def admin():
    if current_user.role != 'admin':
        abort(403)
    submissions = contact.get_contact_submissions(current_user, limit=10)
    pending_sellers = User.query.filter_by(kyc_status='SUBMITTED').order_by(User.created_at.desc()).all()
    return render_template('admin.html', submissions=submissions.get('submissions', []),
                           pending_sellers=pending_sellers)

@app.route('/merchant')
@login_required
def merchant_page():
    if current_user.role != 'seller':
        abort(403)
    dashboard = merchant.get_merchant_dashboard(current_user)
    return render_template('merchant.html', dashboard=dashboard.get('data'))


# --- JSON API ---

def actor():
    return current_user._get_current_object()


def payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def respond(result):
    """Send an action envelope back with a status code matching its error."""
    if result.get('success'):
        return jsonify(result), 200
    error = result.get('error') or ''
    if error in AUTH_ERRORS:
        status = 403 if current_user.is_authenticated else 401
    elif 'not found' in error.lower():
        status = 404
    elif error.startswith('Failed to') or error == 'Internal server error':
        status = 500
    else:
        status = 400
    return jsonify(result), status


@app.route('/api/csrf-token')
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})

# Catalog
@app.route('/api/products')
def get_products():
    args = request.args
    return respond(catalog.get_products(
        category=args.get('category'),
        min_price=args.get('min_price'),
        max_price=args.get('max_price'),
        search=args.get('search'),
        colors=args.get('colors'),
        sizes=args.get('sizes'),
        brands=args.get('brands'),
        in_stock=args.get('in_stock') == 'true',
        sort_by=args.get('sort_by', 'newest'),
        page=args.get('page', 1),
        limit=args.get('limit', catalog.DEFAULT_PAGE_SIZE),
    ))

@app.route('/api/products/featured')
def featured_products():
    return jsonify({'success': True, 'products': catalog.get_featured_products(request.args.get('limit', 8, type=int))})

@app.route('/api/products/compare')
def compare_products():
    ids = [i for i in request.args.get('ids', '').split(',') if i]
    return jsonify({'success': True, 'products': catalog.get_products_by_ids(ids)})

@app.route('/api/products/<slug>')
def product_detail(slug):
    result = catalog.get_product_by_slug(slug)
    if result.get('success'):
        product = result['product']
        result['related_products'] = catalog.get_related_products(
            product['id'], [c['id'] for c in product['categories']])
    return respond(result)

@app.route('/api/products/<int:product_id>/reviews', methods=['POST'])
def add_review(product_id):
    return respond(catalog.add_review(actor(), product_id, payload()))

@app.route('/api/categories')
def categories():
    return respond(catalog.get_categories())

# Search
@app.route('/api/search')
def search():
    """Catalog search; AI filters from the query string win over a free-text query."""
    filters = ai_search.search_params_to_filters(request.args)
    page = request.args.get('page', 1, type=int)
    if filters:
        return respond(catalog.search_products_with_filters(dict(filters, page=page)))

    query = request.args.get('q', '')
    analysis = ai_search.process_search_query(query)
    if analysis['success']:
        result = catalog.search_products_with_filters(dict(analysis['filters'], page=page))
        if result.get('total_products'):
            result['ai'] = analysis
            return respond(result)
    result = catalog.get_products(search=query.strip() or None, page=page)
    result['ai'] = analysis
    return respond(result)

@app.route('/api/search/ai', methods=['POST'])
@limiter.limit("20 per minute")
def search_ai():
    result = ai_search.search_with_ai(payload().get('query', ''))
    if result.get('success'):
        result['search_params'] = ai_search.filters_to_search_params(result['filters'], result['confidence'])
    return respond(result)

def uploaded_image():
    """(base64, content type) from a multipart 'image' file or a JSON body."""
    file = request.files.get('image')
    if file:
        if not (file.mimetype or '').startswith('image/'):
            return None, None
        return ai_search.image_to_base64(file), file.mimetype
    data = payload()
    return data.get('image'), data.get('content_type', 'image/jpeg')

@app.route('/api/search/image', methods=['POST'])
@limiter.limit("10 per minute")
def search_image():
    image, content_type = uploaded_image()
    if not image:
        return respond({'success': False, 'error': 'File must be an image'})
    result = ai_search.search_with_image(image, content_type)
    if result.get('success'):
        result['search_params'] = ai_search.filters_to_search_params(result['filters'], result['confidence'])
    return respond(result)

# Merchant
@app.route('/api/merchant/products', methods=['GET'])
def merchant_products():
    return respond(merchant.get_merchant_products(actor(), request.args.get('page', 1, type=int),
                                                  request.args.get('limit', 20, type=int)))

@app.route('/api/merchant/products', methods=['POST'])
def upload_product():
    return respond(merchant.upload_single_product(actor(), payload()))

@app.route('/api/merchant/products/upload', methods=['POST'])
@limiter.limit("10 per hour")
def upload_products_sheet():
    file = request.files.get('file')
    if not file or not file.filename:
        return respond({'success': False, 'error': 'No file provided'})
    try:
        rows = parse_product_sheet(file)
    except SpreadsheetError as e:
        return respond({'success': False, 'error': str(e)})
    return respond(merchant.upload_products_from_excel(actor(), rows))

@app.route('/api/merchant/products/<int:product_id>', methods=['PUT'])
def update_product(product_id):
    return respond(merchant.update_product(actor(), product_id, payload()))

@app.route('/api/merchant/products/<int:product_id>/status', methods=['PATCH'])
def update_product_status(product_id):
    return respond(merchant.update_product_status(actor(), product_id, bool(payload().get('is_active'))))

@app.route('/api/merchant/products/<int:product_id>', methods=['DELETE'])
def delete_product(product_id):
    return respond(merchant.delete_product(actor(), product_id))

@app.route('/api/merchant/dashboard')
def merchant_dashboard():
    return respond(merchant.get_merchant_dashboard(actor()))

@app.route('/api/merchant/analyze-image', methods=['POST'])
@limiter.limit("10 per minute")
def analyze_product_image():
    image, content_type = uploaded_image()
    if not image:
        return respond({'success': False, 'error': 'File must be an image'})
    prompt = request.form.get('prompt') or payload().get('prompt')
    return respond(ai_search.analyze_product_image(actor(), image, content_type, prompt))

# Cart
@app.route('/api/cart', methods=['GET'])
def get_cart():
    return respond(cart.get_cart(actor()))

@app.route('/api/cart', methods=['PUT'])
def sync_cart():
    return respond(cart.sync_cart(actor(), payload().get('items')))

@app.route('/api/cart', methods=['DELETE'])
def clear_cart():
    return respond(cart.clear_cart(actor()))

@app.route('/api/cart/items', methods=['POST'])
def add_to_cart():
    data = payload()
    return respond(cart.add_to_cart(actor(), data.get('product_id'), data.get('quantity', 1),
                                    data.get('variant_key'), data.get('metadata')))

@app.route('/api/cart/items/<int:product_id>', methods=['PATCH'])
def update_cart_item(product_id):
    data = payload()
    return respond(cart.update_cart_item_quantity(actor(), product_id, data.get('quantity'), data.get('variant_key')))

@app.route('/api/cart/items/<int:product_id>', methods=['DELETE'])
def remove_from_cart(product_id):
    return respond(cart.remove_from_cart(actor(), product_id, request.args.get('variant_key')))

# Wishlist
@app.route('/api/wishlist', methods=['GET'])
def get_wishlist():
    return respond(wishlist.get_wishlist(actor()))

@app.route('/api/wishlist', methods=['DELETE'])
def clear_wishlist():
    return respond(wishlist.clear_wishlist(actor()))

@app.route('/api/wishlist/count')
def wishlist_count():
    return jsonify({'success': True, 'count': wishlist.get_wishlist_count(actor())})

@app.route('/api/wishlist/<int:product_id>', methods=['GET'])
def in_wishlist(product_id):
    return jsonify({'success': True, 'in_wishlist': wishlist.is_in_wishlist(actor(), product_id)})

@app.route('/api/wishlist/<int:product_id>', methods=['POST'])
def add_to_wishlist(product_id):
    return respond(wishlist.add_to_wishlist(actor(), product_id))

@app.route('/api/wishlist/<int:product_id>', methods=['DELETE'])
def remove_from_wishlist(product_id):
    return respond(wishlist.remove_from_wishlist(actor(), product_id))

# Orders
@app.route('/api/orders', methods=['POST'])
def create_order():
    return respond(orders.create_order(actor(), payload()))

@app.route('/api/orders', methods=['GET'])
def user_orders():
    return respond(orders.get_user_orders(actor()))

@app.route('/api/orders/<int:order_id>')
def order_detail(order_id):
    return respond(orders.get_order_by_id(actor(), order_id))

@app.route('/api/orders/<int:order_id>/status', methods=['PATCH'])
def update_order_status(order_id):
    data = payload()
    return respond(orders.update_order_status(actor(), order_id, data.get('status'), data.get('tracking_number')))

# Profile and onboarding
@app.route('/api/profile', methods=['GET'])
def get_profile():
    return respond(accounts.get_profile(actor()))

@app.route('/api/profile', methods=['PUT'])
def update_profile():
    return respond(accounts.update_profile(actor(), payload()))

@app.route('/api/profile/password', methods=['POST'])
@limiter.limit("5 per minute")
def change_password():
    return respond(accounts.change_password(actor(), payload()))

@app.route('/api/profile/stats')
def user_stats():
    return respond(accounts.get_user_stats(actor()))

@app.route('/api/onboarding')
def onboarding_data():
    return respond(accounts.get_user_onboarding_data(actor()))

@app.route('/api/onboarding/status')
def onboarding_status():
    return jsonify(accounts.check_onboarding_status(actor()))

@app.route('/api/onboarding/user', methods=['POST'])
def complete_user_onboarding():
    return respond(accounts.complete_user_onboarding(actor(), payload()))

@app.route('/api/onboarding/seller', methods=['POST'])
def complete_seller_onboarding():
    return respond(accounts.complete_seller_onboarding(actor(), payload()))

# Contact and admin
@app.route('/api/contact', methods=['POST'])
@limiter.limit("5 per hour")
def submit_contact():
    return respond(contact.submit_contact_form(payload()))

@app.route('/api/admin/contact')
def contact_submissions():
    return respond(contact.get_contact_submissions(actor(), request.args.get('page', 1, type=int),
                                                   request.args.get('limit', 20, type=int),
                                                   request.args.get('status')))

@app.route('/api/admin/contact/<int:submission_id>', methods=['PATCH'])
def update_contact(submission_id):
    data = payload()
    return respond(contact.update_contact_status(actor(), submission_id, data.get('status'),
                                                 data.get('notes'), data.get('assigned_to')))

@app.route('/api/admin/sellers/<int:user_id>/kyc', methods=['PATCH'])
def review_kyc(user_id):
    return respond(accounts.review_seller_kyc(actor(), user_id, bool(payload().get('approved'))))


# --- Error Handlers ---

def wants_json():
    return request.path.startswith('/api/')

@app.errorhandler(404)
def page_not_found(e):
    if wants_json():
        return jsonify({'success': False, 'error': 'Not found'}), 404
    return render_template('404.html'), 404

@app.errorhandler(403)
def forbidden(e):
    if wants_json():
        return jsonify({'success': False, 'error': 'Forbidden'}), 403
    return "<h1>403 - Forbidden: You don't have permission to access this resource.</h1>", 403

@app.errorhandler(413)
def too_large(e):
    return jsonify({'success': False, 'error': 'File is too large'}), 413

@app.errorhandler(429)
def rate_limited(e):
    logging.warning(f"Rate limit hit on {request.path} from {request.remote_addr}")
    if wants_json():
        return jsonify({'success': False, 'error': 'Too many requests, slow down'}), 429
    return "<h1>429 - Too many requests</h1>", 429

@app.errorhandler(CSRFError)
def csrf_error(e):
    logging.warning(f"CSRF failure on {request.path} from {request.remote_addr}: {e.description}")
    if wants_json():
        return jsonify({'success': False, 'error': e.description}), 400
    return f"<h1>400 - {e.description}</h1>", 400

@app.errorhandler(500)
def internal_server_error(e):
    if wants_json():
        return jsonify({'success': False, 'error': 'Internal server error'}), 500
    return "<h1>500 - Internal Server Error</h1>", 500


# --- Database Setup ---
SEED_PRODUCTS = [
    {'name': 'Pulse Pro Smartphone', 'price': 24999, 'discount_percentage': 10, 'category': 'Electronics',
     'subcategory': 'Smartphones', 'brand': 'Pulse', 'stock_quantity': 25, 'colors': ['Black', 'Blue'],
     'images': ['https://images.unsplash.com/photo-1511707171634-5f897ff02aa9?auto=format&fit=crop&w=500&q=80'],
     'ai_metadata': {'os': 'Android 14', 'screenSize': 6.5, 'battery': '5000 mAh', 'processor': 'Octa-core'}},
    {'name': 'Studio Wireless Headphones', 'price': 3200, 'category': 'Electronics', 'subcategory': 'Audio',
     'brand': 'Sonic', 'stock_quantity': 40, 'colors': ['Black', 'White'],
     'images': ['https://images.unsplash.com/photo-1505740420928-5e560c06d30e?auto=format&fit=crop&w=500&q=80'],
     'ai_metadata': {'type': 'Over-ear', 'connectivity': 'Bluetooth 5.3', 'battery': '30 hours'}},
    {'name': 'Everyday Canvas Backpack', 'price': 1800, 'discount_percentage': 5, 'category': 'Clothing',
     'subcategory': 'Bags', 'brand': 'Trail', 'stock_quantity': 60, 'colors': ['Gray'],
     'images': ['https://images.unsplash.com/photo-1553062407-98eeb64c6a62?auto=format&fit=crop&w=500&q=80']},
]

def create_db():
    with app.app_context():
        db.create_all()
        seed_password = os.getenv('SEED_PASSWORD', 'password')
        if not User.query.filter_by(username='admin').first():
            hashed_pw = bcrypt.generate_password_hash(seed_password).decode('utf-8')
            db.session.add(User(username='admin', email='admin@example.com', password=hashed_pw, role='admin'))
            db.session.commit()

        if not Product.query.first():
            seller = User.query.filter_by(username='merchant').first()
            if not seller:
                hashed_pw = bcrypt.generate_password_hash(seed_password).decode('utf-8')
                seller = User(username='merchant', email='merchant@example.com', password=hashed_pw, role='seller',
                              name='Demo Merchant', kyc_status='VERIFIED', verification_badge=True,
                              onboarding_completed=True)
                db.session.add(seller)
                db.session.commit()
            for data in SEED_PRODUCTS:
                merchant.upload_single_product(seller, data)
            if not Category.query.filter_by(name='Home & Garden').first():
                db.session.add(Category(name='Home & Garden', description='Furniture, decor and garden'))
                db.session.commit()
        logging.info(f"Database ready with {Product.query.count()} products")

if __name__ == '__main__':
    create_db()
    # In production, debug must be False
    app.run(debug=False, ssl_context='adhoc') # Enable adhoc SSL for local dev to test Secure cookies

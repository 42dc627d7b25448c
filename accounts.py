"""Account profile, password, onboarding and seller KYC."""
import logging

from flask_bcrypt import check_password_hash, generate_password_hash
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from forms import PasswordChangeForm, ProfileForm, SellerOnboardingForm, UserOnboardingForm, bind, first_error
from models import db, Order, Product, Review, User
from permissions import ADMIN_REQUIRED, AUTH_REQUIRED, is_admin, is_authenticated

MAX_INTERESTS = 10
PROFILE_FIELDS = ('name', 'bio', 'location', 'website', 'image')


def get_profile(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}
    return {'success': True, 'user': user.to_dict()}


def update_profile(user, data):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    data = data or {}
    form = bind(ProfileForm, {k: v for k, v in data.items() if k in PROFILE_FIELDS})
    if not form.validate():
        return {'success': False, 'error': first_error(form)}

    interests = data.get('interests')
    if interests is not None:
        if not isinstance(interests, list):
            return {'success': False, 'error': 'Interests must be a list'}
        interests = [str(i).strip() for i in interests if str(i).strip()]
        if len(interests) > MAX_INTERESTS:
            return {'success': False, 'error': f'Maximum {MAX_INTERESTS} interests allowed'}

    try:
        for field in PROFILE_FIELDS:
            if field in data:
                setattr(user, field, getattr(form, field).data or None)
        if interests is not None:
            user.interests = interests
        db.session.commit()
        return {'success': True, 'user': user.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error updating profile")
        return {'success': False, 'error': 'Internal server error'}


def change_password(user, data):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    form = bind(PasswordChangeForm, data)
    if not form.validate():
        return {'success': False, 'error': first_error(form)}

    if not check_password_hash(user.password, form.current_password.data):
        logging.warning(f"Wrong current password on password change for user: {user.username}")
        return {'success': False, 'error': 'Current password is incorrect'}
    if form.new_password.data == form.current_password.data:
        return {'success': False, 'error': 'New password must be different from current password'}

    try:
        user.password = generate_password_hash(form.new_password.data).decode('utf-8')
        db.session.commit()
        logging.info(f"Password changed for user: {user.username}")
        return {'success': True, 'message': 'Password changed successfully'}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error changing password")
        return {'success': False, 'error': 'Internal server error'}


def get_user_stats(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    try:
        total_orders, total_spent = (db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
                                     .filter(Order.buyer_id == user.id)
                                     .one())
        stats = {
            'total_orders': total_orders,
            'total_products': Product.query.filter_by(seller_id=user.id).count(),
            'total_reviews': Review.query.filter_by(user_id=user.id).count(),
            'total_spent': round(float(total_spent), 2),
            'member_since': user.created_at.strftime('%B %Y') if user.created_at else None,
        }
        return {'success': True, 'stats': stats}
    except SQLAlchemyError:
        logging.exception("Error fetching user stats")
        return {'success': False, 'error': 'Internal server error'}


# --- Onboarding ---

def get_user_onboarding_data(user):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}
    data = {k: v for k, v in user.to_dict().items() if k in (
        'id', 'name', 'email', 'role', 'onboarding_completed', 'company_name', 'business_type',
        'gst_number', 'pan_number', 'business_address', 'phone_number')}
    return {'success': True, 'user': data}


def check_onboarding_status(user):
    if not is_authenticated(user):
        return {'needs_onboarding': False}
    return {'needs_onboarding': not user.onboarding_completed, 'user_role': user.role}


def complete_user_onboarding(user, data):
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    form = bind(UserOnboardingForm, data)
    if not form.validate():
        return {'success': False, 'error': first_error(form)}

    try:
        user.name = form.name.data
        user.phone_number = form.phone_number.data or None
        user.onboarding_completed = True
        db.session.commit()
        return {'success': True}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error completing user onboarding")
        return {'success': False, 'error': 'Failed to complete onboarding'}


def complete_seller_onboarding(user, data):
    """Store business details and submit them for KYC review."""
    if not is_authenticated(user):
        return {'success': False, 'error': AUTH_REQUIRED}

    form = bind(SellerOnboardingForm, data)
    if not form.validate():
        return {'success': False, 'error': first_error(form)}

    try:
        user.company_name = form.company_name.data
        user.business_type = form.business_type.data
        user.gst_number = (form.gst_number.data or '').upper() or None
        user.pan_number = form.pan_number.data.upper()
        user.business_address = form.business_address.data
        user.phone_number = form.phone_number.data
        user.onboarding_completed = True
        if user.role != 'admin':
            user.role = 'seller'
        user.kyc_status = 'SUBMITTED'
        user.verification_badge = False
        db.session.commit()
        logging.info(f"KYC submitted by user: {user.username}")
        return {'success': True, 'user': user.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error completing seller onboarding")
        return {'success': False, 'error': 'Failed to complete seller onboarding'}


def review_seller_kyc(admin, user_id, approved):
    if not is_admin(admin):
        return {'success': False, 'error': ADMIN_REQUIRED}

    try:
        seller = db.session.get(User, user_id)
        if not seller:
            return {'success': False, 'error': 'User not found'}
        if seller.kyc_status != 'SUBMITTED':
            return {'success': False, 'error': 'No KYC submission to review'}

        seller.kyc_status = 'VERIFIED' if approved else 'REJECTED'
        seller.verification_badge = bool(approved)
        db.session.commit()
        logging.info(f"KYC for {seller.username} set to {seller.kyc_status} by {admin.username}")
        return {'success': True, 'user': seller.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error reviewing seller KYC")
        return {'success': False, 'error': 'Failed to review KYC'}

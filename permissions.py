UNAUTHORIZED = 'Unauthorized'
AUTH_REQUIRED = 'Authentication required'
SELLER_REQUIRED = 'Unauthorized - Seller access required'
ADMIN_REQUIRED = 'Unauthorized - Admin access required'

AUTH_ERRORS = (UNAUTHORIZED, AUTH_REQUIRED, SELLER_REQUIRED, ADMIN_REQUIRED)


def is_authenticated(user):
    return user is not None and bool(getattr(user, 'is_authenticated', False))


def has_role(user, role):
    return is_authenticated(user) and user.role == role


def is_seller(user):
    return has_role(user, 'seller')


def is_admin(user):
    return has_role(user, 'admin')

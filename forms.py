from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import Form, StringField, PasswordField, SubmitField, TextAreaField, FloatField, IntegerField, BooleanField
from wtforms.validators import DataRequired, InputRequired, Length, Email, Regexp, Optional, URL, NumberRange, EqualTo, AnyOf


# --- Page forms ---

class LoginForm(FlaskForm):
    username = StringField('Username', validators=[
        DataRequired(message="This field is required"),
        Length(min=4, max=25, message="Username must be between 4 and 25 characters"),
        Regexp(r'^[\w.@+-]+$', message="Username may only contain letters, digits and . @ + -")
    ])
    password = PasswordField('Password', validators=[
        DataRequired(message="This field is required")
    ])
    # Honeypot field - should be left empty by humans
    honeypot = StringField('Middle Name', validators=[Length(max=0, message="Bot detected")])
    submit = SubmitField('Sign in')


class RegisterForm(FlaskForm):
    username = StringField('Username', validators=[
        DataRequired(message="This field is required"),
        Length(min=4, max=25, message="Username must be between 4 and 25 characters"),
        Regexp(r'^[\w.@+-]+$', message="Username may only contain letters, digits and . @ + -")
    ])
    email = StringField('Email', validators=[DataRequired(), Email(message="Invalid email address")])
    password = PasswordField('Password', validators=[
        DataRequired(),
        Length(min=8, message="Password must be at least 8 characters")
    ])
    confirm_password = PasswordField('Confirm password', validators=[
        DataRequired(),
        EqualTo('password', message="Passwords don't match")
    ])
    role = StringField('Account type', default='customer', validators=[
        Optional(), AnyOf(['customer', 'seller'], message="Choose customer or seller")
    ])
    honeypot = StringField('Middle Name', validators=[Length(max=0, message="Bot detected")])
    submit = SubmitField('Create account')


class TwoFactorForm(FlaskForm):
    token = StringField('Verification code (2FA)', validators=[
        DataRequired(),
        Length(min=6, max=6, message="The code must be 6 digits"),
        Regexp(r'^\d+$', message="Digits only")
    ])
    submit = SubmitField('Verify')


# --- Action payload forms ---

def _formdata_value(value):
    # Form fields parse text; JSON numbers and booleans are sent the way a browser would
    if isinstance(value, bool):
        return 'y' if value else ''
    return value if isinstance(value, str) else str(value)


def bind(form_class, data):
    """Build a form from a plain dict payload, dropping null values."""
    pairs = []
    for key, value in (data or {}).items():
        if value is None or isinstance(value, dict):
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, _formdata_value(v)) for v in value if v is not None)
        else:
            pairs.append((key, _formdata_value(value)))
    return form_class(MultiDict(pairs))


def first_error(form):
    for errors in form.errors.values():
        if errors:
            return errors[0]
    return 'Invalid input'


class ProductForm(Form):
    name = StringField(validators=[DataRequired(message="Product name is required"), Length(max=200)])
    category = StringField(validators=[DataRequired(message="Category is required"), Length(max=100)])
    subcategory = StringField(validators=[Optional(), Length(max=100)])
    brand = StringField(validators=[Optional(), Length(max=100)])
    price = FloatField(validators=[InputRequired(message="Price is required"), NumberRange(min=0, message="Price must be positive")])
    original_price = FloatField(validators=[Optional(), NumberRange(min=0)])
    discount_percentage = FloatField(validators=[Optional(), NumberRange(min=0, max=100, message="Discount must be between 0 and 100")])
    short_description = TextAreaField(validators=[Optional()])
    detailed_description = TextAreaField(validators=[Optional()])
    key_features = TextAreaField(validators=[Optional()])
    product_type = StringField(validators=[Optional()])
    stock_quantity = IntegerField(validators=[Optional(), NumberRange(min=0, message="Stock cannot be negative")], default=0)
    extra_options = TextAreaField(validators=[Optional()])
    size_options = TextAreaField(validators=[Optional()])
    return_policy = TextAreaField(validators=[Optional()])


class ReviewForm(Form):
    rating = IntegerField(validators=[DataRequired(message="Rating is required"), NumberRange(min=1, max=5, message="Rating must be between 1 and 5")])
    comment = TextAreaField(validators=[Optional(), Length(max=2000)])


class ProfileForm(Form):
    name = StringField(validators=[Optional(), Length(min=1, message="Name is required")])
    bio = TextAreaField(validators=[Optional(), Length(max=500, message="Bio must be less than 500 characters")])
    location = StringField(validators=[Optional(), Length(max=100, message="Location must be less than 100 characters")])
    website = StringField(validators=[Optional(), URL(message="Invalid website URL")])
    image = StringField(validators=[Optional(), URL(message="Invalid image URL")])


class PasswordChangeForm(Form):
    current_password = PasswordField(validators=[DataRequired(message="Current password is required")])
    new_password = PasswordField(validators=[
        DataRequired(message="New password is required"),
        Length(min=6, message="New password must be at least 6 characters")
    ])
    confirm_password = PasswordField(validators=[
        DataRequired(message="Password confirmation is required"),
        EqualTo('new_password', message="Passwords don't match")
    ])


class UserOnboardingForm(Form):
    name = StringField(validators=[DataRequired(message="Name is required"), Length(max=150)])
    phone_number = StringField(validators=[Optional(), Length(max=30)])


class SellerOnboardingForm(Form):
    company_name = StringField(validators=[DataRequired(message="Company name is required"), Length(max=200)])
    business_type = StringField(validators=[DataRequired(message="Business type is required"), Length(max=100)])
    gst_number = StringField(validators=[Optional(), Length(min=15, max=15, message="GST number must be 15 characters")])
    pan_number = StringField(validators=[DataRequired(message="PAN number is required"), Length(min=10, max=10, message="PAN number must be 10 characters")])
    business_address = TextAreaField(validators=[DataRequired(message="Business address is required")])
    phone_number = StringField(validators=[DataRequired(message="Phone number is required"), Length(max=30)])


class AddressForm(Form):
    first_name = StringField(validators=[DataRequired(message="First name is required")])
    last_name = StringField(validators=[DataRequired(message="Last name is required")])
    company = StringField(validators=[Optional()])
    address1 = StringField(validators=[DataRequired(message="Address is required")])
    address2 = StringField(validators=[Optional()])
    city = StringField(validators=[DataRequired(message="City is required")])
    state = StringField(validators=[DataRequired(message="State is required")])
    postal_code = StringField(validators=[DataRequired(message="Postal code is required")])
    country = StringField(validators=[DataRequired(message="Country is required")])
    phone = StringField(validators=[Optional()])


class ContactForm(Form):
    first_name = StringField(validators=[DataRequired(message="First name is required")])
    last_name = StringField(validators=[DataRequired(message="Last name is required")])
    email = StringField(validators=[DataRequired(message="Email is required"), Email(message="Invalid email address")])
    phone = StringField(validators=[Optional()])
    company = StringField(validators=[DataRequired(message="Company is required")])
    job_title = StringField(validators=[Optional()])
    website = StringField(validators=[Optional(), URL(message="Invalid website URL")])
    business_type = StringField(validators=[DataRequired(message="Business type is required")])
    industry_type = StringField(validators=[Optional()])
    company_size = StringField(validators=[DataRequired(message="Company size is required")])
    estimated_quantity = StringField(validators=[DataRequired(message="Estimated quantity is required")])
    estimated_budget = StringField(validators=[Optional()])
    timeline = StringField(validators=[Optional()])
    project_description = TextAreaField(validators=[DataRequired(message="Project description is required")])
    customization_needs = TextAreaField(validators=[Optional()])
    special_requirements = TextAreaField(validators=[Optional()])
    hear_about_us = StringField(validators=[Optional()])
    previous_experience = BooleanField(default=False)



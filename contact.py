"""Bulk order inquiries from the contact page."""
import logging
import math
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from catalog import paginate_args
from forms import ContactForm, bind, first_error
from models import db, ContactSubmission, CONTACT_STATUSES
from notifications import send_mail
from permissions import ADMIN_REQUIRED, is_admin


def submit_contact_form(data):
    data = data or {}
    form = bind(ContactForm, data)
    if not form.validate():
        return {'success': False, 'error': first_error(form)}

    product_types = data.get('product_types') or []
    if not isinstance(product_types, list) or not product_types:
        return {'success': False, 'error': 'Select at least one product type'}

    try:
        submission = ContactSubmission(product_types=[str(t) for t in product_types])
        form.populate_obj(submission)
        for field in ('phone', 'job_title', 'website', 'industry_type', 'estimated_budget', 'timeline',
                      'customization_needs', 'special_requirements', 'hear_about_us'):
            setattr(submission, field, getattr(submission, field) or None)
        db.session.add(submission)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error submitting contact form")
        return {'success': False, 'error': 'Failed to submit contact form. Please try again.'}

    # The inquiry is stored; mail delivery problems are only logged
    company = ' '.join(submission.company.split())
    send_mail(f'New Bulk Order Inquiry from {company}',
              [current_app.config['ADMIN_EMAIL']],
              'email/contact_admin.html',
              submission=submission, submitted_at=datetime.utcnow())
    send_mail('Thank you for your bulk order inquiry - StuffHunt',
              [submission.email],
              'email/contact_confirmation.html',
              submission=submission)

    return {
        'success': True,
        'message': "Thank you for your inquiry! We'll get back to you within 1-2 business days.",
        'submission_id': submission.id,
    }


def get_contact_submissions(user, page=1, limit=20, status=None):
    if not is_admin(user):
        return {'success': False, 'error': ADMIN_REQUIRED}

    page, limit = paginate_args(page, limit)
    try:
        query = ContactSubmission.query
        if status:
            query = query.filter_by(status=status)
        total = query.count()
        submissions = (query.order_by(ContactSubmission.created_at.desc(), ContactSubmission.id.desc())
                       .offset((page - 1) * limit)
                       .limit(limit)
                       .all())
        return {
            'success': True,
            'submissions': [s.to_dict() for s in submissions],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': math.ceil(total / limit),
            },
        }
    except SQLAlchemyError:
        logging.exception("Error fetching contact submissions")
        return {'success': False, 'error': 'Failed to fetch submissions'}


def update_contact_status(user, submission_id, status, notes=None, assigned_to=None):
    if not is_admin(user):
        return {'success': False, 'error': ADMIN_REQUIRED}
    if status not in CONTACT_STATUSES:
        return {'success': False, 'error': 'Invalid status'}

    try:
        submission = db.session.get(ContactSubmission, submission_id)
        if not submission:
            return {'success': False, 'error': 'Submission not found'}
        submission.status = status
        if notes is not None:
            submission.notes = notes
        if assigned_to is not None:
            submission.assigned_to = assigned_to
        db.session.commit()
        return {'success': True, 'submission': submission.to_dict()}
    except SQLAlchemyError:
        db.session.rollback()
        logging.exception("Error updating contact status")
        return {'success': False, 'error': 'Failed to update status'}

import smtplib

import contact
import notifications
from models import db, ContactSubmission
from notifications import mail

INQUIRY = {
    'first_name': 'Priya',
    'last_name': 'Rao',
    'email': 'priya@corp.example.com',
    'company': 'Corp Gifts',
    'business_type': 'Corporate',
    'company_size': '51-200',
    'product_types': ['Apparel', 'Drinkware'],
    'estimated_quantity': '500',
    'project_description': 'Branded hoodies and mugs for an offsite',
    'previous_experience': True,
}


def test_submit_sends_admin_and_confirmation_mail(ctx, app):
    with mail.record_messages() as outbox:
        result = contact.submit_contact_form(INQUIRY)

    assert result['success']
    submission = db.session.get(ContactSubmission, result['submission_id'])
    assert submission.product_types == ['Apparel', 'Drinkware']
    assert submission.previous_experience is True
    assert submission.phone is None
    assert submission.status == 'NEW'

    assert [m.subject for m in outbox] == [
        'New Bulk Order Inquiry from Corp Gifts',
        'Thank you for your bulk order inquiry - StuffHunt',
    ]
    assert outbox[0].recipients == [app.config['ADMIN_EMAIL']]
    assert outbox[1].recipients == ['priya@corp.example.com']
    assert 'Apparel, Drinkware' in outbox[0].html
    assert 'Dear Priya' in outbox[1].html


def test_submit_requires_product_types(ctx):
    result = contact.submit_contact_form(dict(INQUIRY, product_types=[]))
    assert result == {'success': False, 'error': 'Select at least one product type'}
    assert ContactSubmission.query.count() == 0


def test_submit_validates_email(ctx):
    assert contact.submit_contact_form(dict(INQUIRY, email='nope'))['error'] == 'Invalid email address'


def test_mail_failure_does_not_fail_submission(ctx, monkeypatch):
    def broken_send(message):
        raise smtplib.SMTPServerDisconnected('gone')

    monkeypatch.setattr(notifications.mail, 'send', broken_send)

    result = contact.submit_contact_form(INQUIRY)

    assert result['success']
    assert ContactSubmission.query.count() == 1


def test_company_with_line_break_still_mails(ctx):
    with mail.record_messages() as outbox:
        result = contact.submit_contact_form(dict(INQUIRY, company='Corp\nGifts'))

    assert result['success']
    assert outbox[0].subject == 'New Bulk Order Inquiry from Corp Gifts'


def test_bad_mail_header_is_logged_not_raised(ctx, customer):
    with mail.record_messages() as outbox:
        sent = notifications.send_mail('Welcome\nBcc: someone@example.com', [customer.email],
                                       'email/welcome.html', user=customer)

    assert sent is False
    assert outbox == []


def test_admin_lists_and_updates_submissions(admin, customer):
    for i in range(3):
        contact.submit_contact_form(dict(INQUIRY, company=f'Company {i}'))

    assert contact.get_contact_submissions(customer)['error'] == 'Unauthorized - Admin access required'

    listing = contact.get_contact_submissions(admin, page=1, limit=2)
    assert listing['pagination'] == {'page': 1, 'limit': 2, 'total': 3, 'pages': 2}
    assert len(listing['submissions']) == 2

    submission_id = listing['submissions'][0]['id']
    updated = contact.update_contact_status(admin, submission_id, 'QUOTED', notes='Sent quote', assigned_to='ops')
    assert updated['submission']['status'] == 'QUOTED'
    assert updated['submission']['assigned_to'] == 'ops'

    assert contact.get_contact_submissions(admin, status='QUOTED')['pagination']['total'] == 1
    assert contact.update_contact_status(admin, submission_id, 'DONE')['error'] == 'Invalid status'
    assert contact.update_contact_status(admin, 999, 'CLOSED')['error'] == 'Submission not found'

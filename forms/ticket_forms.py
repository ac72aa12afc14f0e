from wtforms import Form, StringField, TextAreaField, BooleanField
from wtforms.validators import DataRequired, Length, AnyOf

from models.ticket import TICKET_STATUSES, TICKET_PRIORITIES


class TicketForm(Form):
    title = StringField('Title', validators=[DataRequired('Title is required'), Length(max=200)])
    description = TextAreaField('Description', validators=[DataRequired('Description is required')])
    priority = StringField('Priority', validators=[
        DataRequired('Priority is required'),
        AnyOf(TICKET_PRIORITIES, message='Invalid priority level'),
    ])
    category = StringField('Category', validators=[DataRequired('Category is required'), Length(max=100)])


class EditTicketForm(TicketForm):
    status = StringField('Status', validators=[
        DataRequired('Status is required'),
        AnyOf(TICKET_STATUSES, message='Invalid status'),
    ])


class CommentForm(Form):
    comment = TextAreaField('Comment', validators=[DataRequired('Comment is required')])
    is_internal = BooleanField('Internal note')

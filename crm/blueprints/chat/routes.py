"""
Team chat: an append-only message log.

A message is either:
- group (broadcast): receiver_id NULL, is_group_message True
- private: addressed to one other active profile

Views (query string):
- ?receiver_id=X  conversation between me and X, both directions
- ?group=1        all group messages
- (none)          everything I sent, received, or that is group
"""

import logging

from flask import Blueprint, flash, jsonify, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError

from ...extensions import db
from ...models import ChatMessage, Profile, Task, Ticket
from ...security import WRITE, permission_required
from ...utils import form_bool, form_str, parse_optional_int

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat", __name__, url_prefix="/chat")


def _contacts():
    """Active profiles I can message privately."""
    return (
        Profile.query.filter(Profile.is_active.is_(True), Profile.id != current_user.id)
        .order_by(Profile.first_name.asc(), Profile.last_name.asc())
        .all()
    )


def conversation_query(me_id: int, receiver_id=None, group: bool = False):
    """Messages of one view, oldest first."""
    query = ChatMessage.query
    if group:
        query = query.filter(ChatMessage.is_group_message.is_(True))
    elif receiver_id is not None:
        query = query.filter(
            ChatMessage.is_group_message.is_(False),
            or_(
                and_(ChatMessage.sender_id == me_id, ChatMessage.receiver_id == receiver_id),
                and_(ChatMessage.sender_id == receiver_id, ChatMessage.receiver_id == me_id),
            ),
        )
    else:
        query = query.filter(
            or_(
                ChatMessage.sender_id == me_id,
                ChatMessage.receiver_id == me_id,
                ChatMessage.is_group_message.is_(True),
            )
        )
    return query.order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())


def _view_args():
    receiver_id = parse_optional_int(request.args.get("receiver_id"))
    group = request.args.get("group") in ("1", "true", "on")
    return receiver_id, group


@chat_bp.route("/")
@login_required
@permission_required("chat")
def index():
    receiver_id, group = _view_args()
    contacts = _contacts()

    receiver = None
    if receiver_id is not None and not group:
        receiver = next((c for c in contacts if c.id == receiver_id), None)
        if receiver is None:
            flash("Unknown recipient.", "warning")
            return redirect(url_for("chat.index"))

    messages = conversation_query(current_user.id, receiver_id=receiver_id if receiver else None, group=group).all()

    return render_template(
        "chat/index.html",
        messages=messages,
        contacts=contacts,
        receiver=receiver,
        group=group,
    )


@chat_bp.route("/messages.json")
@login_required
@permission_required("chat")
def messages_json():
    """Same list as the page, for polling clients."""
    receiver_id, group = _view_args()
    messages = conversation_query(current_user.id, receiver_id=receiver_id, group=group).all()
    return jsonify({"messages": [m.to_dict() for m in messages]})


@chat_bp.route("/send", methods=["POST"])
@login_required
@permission_required("chat", WRITE)
def send_message():
    text = form_str("message")
    is_group = form_bool("is_group_message")
    receiver_id = None if is_group else parse_optional_int(request.form.get("receiver_id"))

    back = url_for("chat.index", group=1) if is_group else url_for("chat.index", receiver_id=receiver_id)

    if not text:
        flash("Message cannot be empty.", "danger")
        return redirect(back)

    if not is_group:
        if receiver_id is None or receiver_id not in {c.id for c in _contacts()}:
            flash("Please select a valid recipient.", "danger")
            return redirect(url_for("chat.index"))

    ticket_id = parse_optional_int(request.form.get("ticket_id"))
    task_id = parse_optional_int(request.form.get("task_id"))
    if ticket_id is not None and db.session.get(Ticket, ticket_id) is None:
        ticket_id = None
    if task_id is not None and db.session.get(Task, task_id) is None:
        task_id = None

    message = ChatMessage(
        sender_id=current_user.id,
        receiver_id=receiver_id,
        message=text,
        is_group_message=is_group,
        ticket_id=ticket_id,
        task_id=task_id,
    )

    try:
        db.session.add(message)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to send chat message from %s", current_user.id)
        flash("Failed to send message.", "danger")
        return redirect(back)

    logger.info("Chat message %s sent by %s", message.id, current_user.email)
    return redirect(back)

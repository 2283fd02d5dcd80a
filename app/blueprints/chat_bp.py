"""
Chat Blueprint: client <-> admin messaging.

  GET  /api/v1/chat/conversations                    conversations, newest activity first
  POST /api/v1/chat/conversations/<id>/read          zero the unread counter
  GET  /api/v1/chat/clients/<client_id>/messages     message thread
  POST /api/v1/chat/clients/<client_id>/messages     { "body": "...", "sender": "client"|"admin" }
  POST /api/v1/chat/messages/<id>/read               mark one message read
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required, require_permission
from app.services import chat_service as svc

chat_bp = Blueprint("chat", __name__, url_prefix="/api/v1/chat")


@chat_bp.route("/conversations", methods=["GET"])
@require_permission("clientes.visualizar")
def list_conversations():
    return jsonify(svc.list_conversations(g.current_user))


@chat_bp.route("/conversations/<conversation_id>/read", methods=["POST"])
@login_required
def mark_conversation_read(conversation_id):
    return jsonify(svc.mark_conversation_read(g.current_user, conversation_id))


@chat_bp.route("/clients/<client_id>/messages", methods=["GET"])
@require_permission("clientes.visualizar")
def list_messages(client_id):
    return jsonify(svc.list_messages(g.current_user, client_id))


@chat_bp.route("/clients/<client_id>/messages", methods=["POST"])
@login_required
def send_message(client_id):
    data = request.get_json(silent=True) or {}
    result = svc.send_message(
        g.current_user, client_id, data.get("body"), sender=data.get("sender", "admin"),
    )
    return jsonify(result), 201


@chat_bp.route("/messages/<message_id>/read", methods=["POST"])
@login_required
def mark_message_read(message_id):
    return jsonify(svc.mark_message_read(g.current_user, message_id))

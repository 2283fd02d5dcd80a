"""
Demo data seed.

Creates the "demo" tenant with four users (one per role), the six default
pipeline stages, five clients, five orders with their stage history and
three notifications. Running it twice is a no-op unless reset=True.

Usage:
    flask seed-demo [--reset]
    python scripts/seed_demo_data.py [--reset]
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from app.models import db
from app.models.audit import AuditLog
from app.models.auth import Session, Tenant, User, user_clients
from app.models.chat import ChatConversation, ChatMessage
from app.models.client import Client
from app.models.notification import Notification
from app.models.order import Order, OrderMovement
from app.models.pipeline import Stage, StageTransition
from app.models.settings import SystemSettings
from app.utils.crypto import hash_password

logger = logging.getLogger(__name__)


DEMO_TENANT_ID = "tenant-demo"
DEMO_TENANT_SLUG = "demo"


def _dt(y, m, d):
    return datetime(y, m, d, 12, 0, tzinfo=timezone.utc)


# ── Data ─────────────────────────────────────────────────────────────────────

TENANT = {
    "id": DEMO_TENANT_ID,
    "name": "ProcessFlow Demo",
    "slug": DEMO_TENANT_SLUG,
    "domain": "demo.processflow.com.br",
    "primary_color": "#3B82F6",
    "secondary_color": "#64748B",
}

USERS = [
    {"id": "user-admin", "name": "Administrador", "email": "admin@processflow.com.br",
     "password": "admin", "role": "admin", "department": "TI", "team": "Gestão"},
    {"id": "user-supervisor", "name": "João Supervisor", "email": "supervisor@processflow.com.br",
     "password": "supervisor", "role": "supervisor", "department": "Vendas", "team": "Comercial"},
    {"id": "user-operador", "name": "Maria Operadora", "email": "operador@processflow.com.br",
     "password": "operador", "role": "operator", "department": "Produção", "team": "Manufatura"},
    {"id": "user-leitor", "name": "Cliente Exemplo", "email": "cliente@processflow.com.br",
     "password": "cliente", "role": "reader", "department": "Cliente", "team": "Externo",
     "linked_client_ids": ["cliente-001", "cliente-002"]},
]

STAGES = [
    {"id": "etapa-lead", "name": "Lead", "description": "Prospects e oportunidades iniciais",
     "color": "#F59E0B", "sort_order": 1, "notify_after_days": 3},
    {"id": "etapa-venda", "name": "Venda", "description": "Negociação e fechamento",
     "color": "#3B82F6", "sort_order": 2, "notify_after_days": 5},
    {"id": "etapa-pagamento", "name": "Pagamento", "description": "Cobrança e recebimento",
     "color": "#10B981", "sort_order": 3, "notify_after_days": 7},
    {"id": "etapa-producao", "name": "Produção", "description": "Fabricação do produto",
     "color": "#8B5CF6", "sort_order": 4, "notify_after_days": 10},
    {"id": "etapa-expedicao", "name": "Expedição", "description": "Preparação para envio",
     "color": "#F97316", "sort_order": 5, "notify_after_days": 2},
    {"id": "etapa-entrega", "name": "Entregue", "description": "Entrega ao cliente final",
     "color": "#059669", "sort_order": 6, "notify_after_days": 0,
     "is_terminal": True, "allow_edit": False},
]

CLIENTS = [
    {"id": "cliente-001", "name": "Empresa ABC Ltda", "email": "contato@empresaabc.com",
     "phone": "(11) 9999-9999", "address": "Rua das Empresas, 123 - São Paulo/SP",
     "document": "12.345.678/0001-90", "notes": "Cliente preferencial"},
    {"id": "cliente-002", "name": "Comercial XYZ", "email": "vendas@comercialxyz.com",
     "phone": "(11) 8888-8888", "address": "Av. Comercial, 456 - São Paulo/SP",
     "document": "98.765.432/0001-10", "notes": ""},
    {"id": "cliente-003", "name": "Indústria DEF S.A.", "email": "compras@industriadef.com",
     "phone": "(11) 7777-7777", "address": "Distrito Industrial, 789 - São Paulo/SP",
     "document": "11.222.333/0001-44", "notes": "Pagamento sempre à vista"},
    {"id": "cliente-004", "name": "Startup GHI", "email": "tech@startupghi.com",
     "phone": "(11) 6666-6666", "address": "Hub de Inovação, 101 - São Paulo/SP",
     "document": "55.666.777/0001-88", "notes": "Startup de tecnologia"},
    {"id": "cliente-005", "name": "Consultoria JKL", "email": "projetos@consultoriajkl.com",
     "phone": "(11) 5555-5555", "address": "Centro Empresarial, 202 - São Paulo/SP",
     "document": "99.888.777/0001-66", "notes": "Parceiro estratégico"},
]

# history entries: (stage_id, user_id, date, comment)
ORDERS = [
    {
        "id": "processo-001", "order_number": "PED-2024-001", "client_id": "cliente-001",
        "salesperson": "Carlos Vendedor", "sale_date": date(2024, 1, 15),
        "first_payment_date": date(2024, 1, 20), "expected_delivery_date": date(2024, 2, 15),
        "product": "Sistema de Gestão Personalizado", "quantity": 1, "packaging": "Digital",
        "freight_type": "Email", "physical_location": "hall", "courtesies": [], "shortages": [],
        "notes": "Cliente preferencial, priorizar entrega", "priority": "high",
        "total_value": Decimal("15000"), "assignee_id": "user-operador", "tags": ["vip", "customizado"],
        "history": [
            ("etapa-lead", "user-supervisor", _dt(2024, 1, 10), "Lead recebido via website"),
            ("etapa-venda", "user-supervisor", _dt(2024, 1, 15), "Venda fechada após demonstração"),
            ("etapa-pagamento", "user-supervisor", _dt(2024, 1, 20), "Primeira parcela recebida"),
            ("etapa-producao", "user-operador", _dt(2024, 1, 25), "Produção iniciada"),
        ],
    },
    {
        "id": "processo-002", "order_number": "PED-2024-002", "client_id": "cliente-002",
        "salesperson": "Ana Silva", "sale_date": date(2024, 1, 20),
        "first_payment_date": None, "expected_delivery_date": date(2024, 2, 20),
        "product": "Website Institucional", "quantity": 1, "packaging": "Digital",
        "freight_type": "Online", "physical_location": "yard", "courtesies": ["Design extra"],
        "shortages": [], "notes": "Aguardando aprovação final do layout", "priority": "normal",
        "total_value": Decimal("8500"), "assignee_id": "user-supervisor", "tags": ["website", "design"],
        "history": [
            ("etapa-lead", "user-supervisor", _dt(2024, 1, 18), "Contato via telefone"),
            ("etapa-venda", "user-supervisor", _dt(2024, 1, 20), "Proposta aceita"),
        ],
    },
    {
        "id": "processo-003", "order_number": "PED-2024-003", "client_id": "cliente-003",
        "salesperson": "Pedro Santos", "sale_date": date(2024, 1, 25),
        "first_payment_date": date(2024, 1, 30), "expected_delivery_date": date(2024, 3, 1),
        "product": "Automação Industrial", "quantity": 3, "packaging": "Caixa reforçada",
        "freight_type": "Transportadora", "physical_location": "street", "courtesies": [],
        "shortages": ["Manual técnico"], "notes": "Instalação agendada para março",
        "priority": "urgent", "total_value": Decimal("45000"), "assignee_id": "user-supervisor",
        "tags": ["industrial", "licitacao"],
        "history": [
            ("etapa-lead", "user-supervisor", _dt(2024, 1, 22), "Licitação pública"),
            ("etapa-venda", "user-supervisor", _dt(2024, 1, 25), "Contrato assinado"),
            ("etapa-pagamento", "user-supervisor", _dt(2024, 1, 30), "Entrada recebida"),
        ],
    },
    {
        "id": "processo-004", "order_number": "PED-2024-004", "client_id": "cliente-004",
        "salesperson": "Lucas Oliveira", "sale_date": date(2024, 2, 1),
        "first_payment_date": None, "expected_delivery_date": date(2024, 2, 28),
        "product": "App Mobile", "quantity": 1, "packaging": "Digital", "freight_type": "App Store",
        "physical_location": "yard", "courtesies": ["Suporte 3 meses"], "shortages": [],
        "notes": "Primeira versão MVP", "priority": "normal", "total_value": Decimal("25000"),
        "assignee_id": "user-supervisor", "tags": ["mobile", "mvp", "startup"],
        "history": [
            ("etapa-lead", "user-supervisor", _dt(2024, 2, 1), "Reunião inicial realizada"),
        ],
    },
    {
        "id": "processo-005", "order_number": "PED-2024-005", "client_id": "cliente-005",
        "salesperson": "Fernanda Costa", "sale_date": date(2024, 1, 28),
        "first_payment_date": date(2024, 2, 5), "expected_delivery_date": date(2024, 2, 10),
        "delivered_at": _dt(2024, 2, 10),
        "product": "Treinamento Corporativo", "quantity": 1, "packaging": "Presencial",
        "freight_type": "In-loco", "physical_location": "delivered", "courtesies": [],
        "shortages": [], "notes": "Treinamento concluído com sucesso", "priority": "normal",
        "total_value": Decimal("12000"), "assignee_id": "user-supervisor",
        "tags": ["treinamento", "concluido"],
        "history": [
            ("etapa-lead", "user-supervisor", _dt(2024, 1, 25), "Indicação de cliente"),
            ("etapa-venda", "user-supervisor", _dt(2024, 1, 28), "Fechamento rápido"),
            ("etapa-pagamento", "user-supervisor", _dt(2024, 2, 5), "Pagamento à vista"),
            ("etapa-producao", "user-operador", _dt(2024, 2, 6), "Material preparado"),
            ("etapa-expedicao", "user-operador", _dt(2024, 2, 9), "Pronto para entrega"),
            ("etapa-entrega", "user-supervisor", _dt(2024, 2, 10), "Treinamento realizado com sucesso"),
        ],
    },
]

# (id, type, title, message, order_id, recipient, is_read, age)
NOTIFICATIONS = [
    ("notif-001", "delay", "Processo Atrasado",
     "O pedido PED-2024-001 está com a entrega atrasada há 2 dias",
     "processo-001", "user-supervisor", False, timedelta(0)),
    ("notif-002", "stalled", "Processo Parado",
     "O pedido PED-2024-002 está parado na etapa de Venda há 5 dias",
     "processo-002", "user-supervisor", False, timedelta(hours=2)),
    ("notif-003", "due", "Pagamento Vencendo",
     "O pagamento do pedido PED-2024-003 vence em 2 dias",
     "processo-003", "user-admin", True, timedelta(days=1)),
]


# ── Seeder ───────────────────────────────────────────────────────────────────

def purge_tenant(tenant_id: str) -> None:
    """Delete every row owned by a tenant, children first."""
    order_ids = [o.id for o in Order.query_for_tenant(tenant_id).with_entities(Order.id)]
    stage_ids = [s.id for s in Stage.query_for_tenant(tenant_id).with_entities(Stage.id)]
    user_ids = [u.id for u in User.query.filter_by(tenant_id=tenant_id).with_entities(User.id)]

    Notification.query_for_tenant(tenant_id).delete(synchronize_session=False)
    ChatMessage.query_for_tenant(tenant_id).delete(synchronize_session=False)
    ChatConversation.query_for_tenant(tenant_id).delete(synchronize_session=False)
    if order_ids:
        OrderMovement.query.filter(OrderMovement.order_id.in_(order_ids)).delete(synchronize_session=False)
    Order.query_for_tenant(tenant_id).delete(synchronize_session=False)
    if stage_ids:
        StageTransition.query.filter(StageTransition.from_stage_id.in_(stage_ids)).delete(
            synchronize_session=False
        )
    Stage.query_for_tenant(tenant_id).delete(synchronize_session=False)
    if user_ids:
        db.session.execute(user_clients.delete().where(user_clients.c.user_id.in_(user_ids)))
        Session.query.filter(Session.user_id.in_(user_ids)).delete(synchronize_session=False)
    AuditLog.query.filter_by(tenant_id=tenant_id).delete(synchronize_session=False)
    User.query.filter_by(tenant_id=tenant_id).delete(synchronize_session=False)
    Client.query_for_tenant(tenant_id).delete(synchronize_session=False)
    SystemSettings.query.filter_by(tenant_id=tenant_id).delete(synchronize_session=False)
    Tenant.query.filter_by(id=tenant_id).delete(synchronize_session=False)
    db.session.flush()
    # Bulk deletes skip the identity map; drop stale instances before reseeding
    db.session.expunge_all()
    logger.info("Purged tenant %s", tenant_id)


def seed_demo(reset: bool = False) -> dict:
    """Insert the demo tenant. Returns per-entity counts (all zero when skipped)."""
    counts = {"tenants": 0, "users": 0, "stages": 0, "clients": 0,
              "orders": 0, "movements": 0, "notifications": 0}

    existing = db.session.get(Tenant, DEMO_TENANT_ID)
    if existing is not None:
        if not reset:
            logger.info("Demo tenant already present, skipping seed")
            return counts
        purge_tenant(DEMO_TENANT_ID)

    tenant = Tenant(**TENANT)
    db.session.add(tenant)
    db.session.add(SystemSettings(tenant_id=tenant.id))
    counts["tenants"] = 1

    for s in STAGES:
        db.session.add(Stage(tenant_id=tenant.id, **s))
        counts["stages"] += 1

    clients = {}
    for c in CLIENTS:
        clients[c["id"]] = Client(tenant_id=tenant.id, created_at=_dt(2024, 1, 1), **c)
        db.session.add(clients[c["id"]])
        counts["clients"] += 1

    users = {}
    for u in USERS:
        data = dict(u)
        password = data.pop("password")
        linked = data.pop("linked_client_ids", [])
        user = User(tenant_id=tenant.id, password_hash=hash_password(password),
                    created_at=_dt(2024, 1, 1), **data)
        user.linked_clients = [clients[cid] for cid in linked]
        db.session.add(user)
        users[user.id] = user
        counts["users"] += 1
    db.session.flush()

    for o in ORDERS:
        data = dict(o)
        history = data.pop("history")
        client = clients[data["client_id"]]
        order = Order(
            tenant_id=tenant.id,
            client_name=client.name,
            current_stage_id=history[-1][0],
            created_at=history[0][2],
            updated_at=history[-1][2],
            **data,
        )
        previous = None
        for seq, (stage_id, user_id, at, comment) in enumerate(history):
            order.movements.append(OrderMovement(
                sequence=seq,
                previous_stage_id=previous,
                new_stage_id=stage_id,
                user_id=user_id,
                user_name=users[user_id].name,
                comment=comment,
                automatic=False,
                created_at=at,
            ))
            previous = stage_id
            counts["movements"] += 1
        db.session.add(order)
        counts["orders"] += 1

    now = datetime.now(timezone.utc)
    for nid, type_, title, message, order_id, recipient, is_read, age in NOTIFICATIONS:
        db.session.add(Notification(
            id=nid, tenant_id=tenant.id, recipient_user_id=recipient, type=type_,
            title=title, message=message, order_id=order_id, is_read=is_read,
            read_at=now if is_read else None, created_at=now - age,
        ))
        counts["notifications"] += 1

    db.session.commit()
    logger.info("Demo tenant seeded: %s", counts)
    return counts

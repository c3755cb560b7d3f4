from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from config import get_settings
from csv_utils import export_expenses
from database import SessionLocal, create_schema, get_db
from formatters import format_currency, format_date_time
from models import (
    Category,
    CreditCard,
    CreditCardRepayment,
    Expense,
    Investment,
    PartnerInvitation,
    ShareFilter,
    Subcategory,
    User,
)
from periods import AnalyticsPeriod, resolve_period
from scheduler import SchedulerManager
from schemas import (
    CategoryIn,
    CreditCardIn,
    CreditCardRepaymentIn,
    ExpenseFilters,
    ExpenseIn,
    InvestmentFilters,
    InvestmentIn,
    InvitationIn,
    LoginIn,
    SignupIn,
    SubcategoryIn,
    SubcategoryUpdateIn,
)
from services import (
    AnalyticsService,
    CategoryService,
    CreditCardService,
    ExpenseService,
    InvestmentService,
    NotFoundError,
    PartnerService,
    PaymentSourceService,
    PermissionDeniedError,
    SubcategoryService,
    UserService,
    seed_reference_data,
)
from sessions import issue_session_token, read_session_token

app = FastAPI(title="Expense Tracker")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if get_settings().auto_create_schema:
        create_schema()
    db = SessionLocal()
    try:
        seed_reference_data(db)
    finally:
        db.close()
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = read_session_token(authorization[7:].strip())
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user


def _query_model(model, request: Request):
    params = {k: v for k, v in request.query_params.items() if v != ""}
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()) from exc


def expense_filters_from_request(request: Request) -> ExpenseFilters:
    return _query_model(ExpenseFilters, request)


def investment_filters_from_request(request: Request) -> InvestmentFilters:
    return _query_model(InvestmentFilters, request)


def user_json(user: User) -> dict[str, object]:
    return {"id": user.id, "email": user.email, "full_name": user.full_name}


def category_json(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "icon": category.icon,
        "color": category.color,
        "is_default": category.user_id is None,
        "user_id": category.user_id,
    }


def subcategory_json(subcategory: Subcategory) -> dict[str, object]:
    return {
        "id": subcategory.id,
        "category_id": subcategory.category_id,
        "name": subcategory.name,
        "icon": subcategory.icon,
        "color": subcategory.color,
    }


def expense_json(expense: Expense, user_id: int) -> dict[str, object]:
    return {
        "id": expense.id,
        "user_id": expense.user_id,
        "is_own": expense.user_id == user_id,
        "partner_id": expense.partner_id,
        "amount_cents": expense.amount_cents,
        "amount_display": format_currency(expense.amount_cents),
        "category_id": expense.category_id,
        "category": category_json(expense.category) if expense.category else None,
        "subcategory_id": expense.subcategory_id,
        "subcategory": expense.subcategory.name if expense.subcategory else None,
        "payment_source_id": expense.payment_source_id,
        "payment_source": (
            expense.payment_source.name if expense.payment_source else None
        ),
        "credit_card_id": expense.credit_card_id,
        "credit_card": expense.credit_card.card_name if expense.credit_card else None,
        "date": expense.date.isoformat(),
        "time": expense.time,
        "when": format_date_time(expense.date, expense.time),
        "notes": expense.notes,
        "custom_icon": expense.custom_icon,
        "paid_by_user_id": expense.paid_by_user_id,
        "is_shared": expense.is_shared,
        "amount_paid_by_user_cents": expense.amount_paid_by_user_cents,
        "amount_paid_by_partner_cents": expense.amount_paid_by_partner_cents,
        "deleted_at": expense.deleted_at.isoformat() if expense.deleted_at else None,
    }


def investment_json(investment: Investment) -> dict[str, object]:
    return {
        "id": investment.id,
        "investment_type_id": investment.investment_type_id,
        "amount_cents": investment.amount_cents,
        "date": investment.date.isoformat(),
        "transaction_type": investment.transaction_type.value,
        "notes": investment.notes,
        "maturity_date": (
            investment.maturity_date.isoformat() if investment.maturity_date else None
        ),
        "interest_rate": (
            str(investment.interest_rate) if investment.interest_rate is not None else None
        ),
    }


def credit_card_json(card: CreditCard) -> dict[str, object]:
    return {
        "id": card.id,
        "card_name": card.card_name,
        "card_number_last4": card.card_number_last4,
        "credit_limit_cents": card.credit_limit_cents,
        "opening_balance_cents": card.opening_balance_cents,
        "current_balance_cents": card.current_balance_cents,
        "utilization": CreditCardService.utilization(card),
        "due_date": card.due_date.isoformat() if card.due_date else None,
    }


def repayment_json(repayment: CreditCardRepayment) -> dict[str, object]:
    return {
        "id": repayment.id,
        "credit_card_id": repayment.credit_card_id,
        "amount_cents": repayment.amount_cents,
        "payment_date": repayment.payment_date.isoformat(),
        "notes": repayment.notes,
    }


def invitation_json(invitation: PartnerInvitation, link: Optional[str] = None):
    data: dict[str, object] = {
        "id": invitation.id,
        "to_email": invitation.to_email,
        "status": invitation.status.value,
        "expires_at": invitation.expires_at.isoformat(),
        "created_at": invitation.created_at.isoformat(),
    }
    if link:
        data["token"] = invitation.token
        data["signup_link"] = link
    return data


# Auth


@app.post("/api/auth/signup")
def signup(payload: SignupIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).signup(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"user": user_json(user), "token": issue_session_token(user.id)}


@app.post("/api/auth/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(payload.email, payload.password)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return {"user": user_json(user), "token": issue_session_token(user.id)}


@app.get("/api/auth/me")
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    partners = PartnerService(db, user.id)
    partner = partners.current()
    partner_user = None
    if partner:
        partner_user = user_json(UserService(db).get(partner.other_member(user.id)))
    return {
        "user": user_json(user),
        "partner": (
            {"id": partner.id, "status": partner.status.value, "user": partner_user}
            if partner
            else None
        ),
    }


# Partner


@app.get("/api/partner")
def partner_status(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    partners = PartnerService(db, user.id)
    partner = partners.current()
    return {
        "partner": (
            {
                "id": partner.id,
                "status": partner.status.value,
                "initiated_by": partner.initiated_by,
                "user": user_json(
                    UserService(db).get(partner.other_member(user.id))
                ),
            }
            if partner
            else None
        ),
        "sent": [invitation_json(inv) for inv in partners.list_invitations()],
        "received": [
            invitation_json(inv) for inv in partners.incoming_invitations()
        ],
    }


@app.post("/api/partner/invitations")
def create_invitation(
    payload: InvitationIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    partners = PartnerService(db, user.id)
    try:
        invitation = partners.invite(payload.to_email)
    except ValueError as exc:
        raise http_error(exc) from exc
    return invitation_json(invitation, partners.signup_link(invitation))


@app.post("/api/partner/invitations/{token}/accept")
def accept_invitation(
    token: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    try:
        partner = PartnerService(db, user.id).accept(token)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"id": partner.id, "status": partner.status.value}


@app.post("/api/partner/invitations/{token}/reject")
def reject_invitation(
    token: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    try:
        PartnerService(db, user.id).reject(token)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.delete("/api/partner")
def unlink_partner(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    try:
        PartnerService(db, user.id).unlink()
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


# Categories


@app.get("/api/categories")
def list_categories(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    subcategories = SubcategoryService(db, user.id).list_all()
    rows = []
    for category in CategoryService(db, user.id).list_all():
        data = category_json(category)
        data["subcategories"] = [
            subcategory_json(sub) for sub in subcategories if sub.category_id == category.id
        ]
        rows.append(data)
    return rows


@app.post("/api/categories")
def create_category(
    payload: CategoryIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return category_json(CategoryService(db, user.id).create(payload))


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user.id).update(category_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return category_json(category)


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user.id).delete(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.get("/api/subcategories")
def list_subcategories(
    category_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = SubcategoryService(db, user.id)
    items = service.for_category(category_id) if category_id else service.list_all()
    return [subcategory_json(sub) for sub in items]


@app.post("/api/subcategories")
def create_subcategory(
    payload: SubcategoryIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        subcategory = SubcategoryService(db, user.id).create(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return subcategory_json(subcategory)


@app.put("/api/subcategories/{subcategory_id}")
def update_subcategory(
    subcategory_id: int,
    payload: SubcategoryUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        subcategory = SubcategoryService(db, user.id).update(subcategory_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return subcategory_json(subcategory)


@app.delete("/api/subcategories/{subcategory_id}")
def delete_subcategory(
    subcategory_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        SubcategoryService(db, user.id).delete(subcategory_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


# Expenses


@app.get("/api/expenses")
def list_expenses(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters = expense_filters_from_request(request)
    try:
        period = resolve_period(
            request.query_params.get("period"),
            request.query_params.get("start"),
            request.query_params.get("end"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        page = max(int(request.query_params.get("page", "1")), 1)
        limit = min(max(int(request.query_params.get("limit", "50")), 1), 200)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid page or limit") from exc
    offset = (page - 1) * limit
    items = ExpenseService(db, user.id).list(
        filters, period, limit=limit + 1, offset=offset
    )
    has_more = len(items) > limit
    return {
        "items": [expense_json(e, user.id) for e in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.get("/api/expenses/deleted")
def list_deleted_expenses(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return [expense_json(e, user.id) for e in ExpenseService(db, user.id).deleted()]


@app.get("/api/expenses/export.csv")
def export_expenses_endpoint(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters = expense_filters_from_request(request)
    service = ExpenseService(db, user.id)
    expenses = service.list(filters)
    names = UserService(db).names(service.partners.member_ids())
    csv_text = export_expenses(expenses, names)
    filename = f"expenses_{filters.start_date or 'all'}_{filters.end_date or 'all'}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/expenses")
def create_expense(
    payload: ExpenseIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, user.id).create(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return expense_json(expense, user.id)


@app.get("/api/expenses/{expense_id}")
def get_expense(
    expense_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, user.id).get(expense_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return expense_json(expense, user.id)


@app.put("/api/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    payload: ExpenseIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, user.id).update(expense_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return expense_json(expense, user.id)


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        ExpenseService(db, user.id).soft_delete(expense_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.post("/api/expenses/{expense_id}/restore")
def restore_expense(
    expense_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        ExpenseService(db, user.id).restore(expense_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


# Investments


@app.get("/api/investment-types")
def list_investment_types(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return [
        {"id": t.id, "name": t.name, "icon": t.icon}
        for t in InvestmentService(db, user.id).types()
    ]


@app.get("/api/investments")
def list_investments(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = InvestmentService(db, user.id)
    items = service.list(investment_filters_from_request(request))
    return {
        "items": [investment_json(i) for i in items],
        "summary": service.summary(items),
    }


@app.post("/api/investments")
def create_investment(
    payload: InvestmentIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        investment = InvestmentService(db, user.id).create(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return investment_json(investment)


@app.put("/api/investments/{investment_id}")
def update_investment(
    investment_id: int,
    payload: InvestmentIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        investment = InvestmentService(db, user.id).update(investment_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return investment_json(investment)


@app.delete("/api/investments/{investment_id}")
def delete_investment(
    investment_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        InvestmentService(db, user.id).soft_delete(investment_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


# Payment sources and credit cards


@app.get("/api/payment-sources")
def list_payment_sources(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return [
        {"id": s.id, "name": s.name, "type": s.type.value, "icon": s.icon}
        for s in PaymentSourceService(db).list_all()
    ]


@app.get("/api/credit-cards")
def list_credit_cards(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return [credit_card_json(c) for c in CreditCardService(db, user.id).list_all()]


@app.post("/api/credit-cards")
def create_credit_card(
    payload: CreditCardIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return credit_card_json(CreditCardService(db, user.id).create(payload))


@app.put("/api/credit-cards/{card_id}")
def update_credit_card(
    card_id: int,
    payload: CreditCardIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        card = CreditCardService(db, user.id).update(card_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return credit_card_json(card)


@app.delete("/api/credit-cards/{card_id}")
def delete_credit_card(
    card_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        CreditCardService(db, user.id).delete(card_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.get("/api/credit-card-repayments")
def list_repayments(
    card_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = CreditCardService(db, user.id).list_repayments(card_id)
    return [repayment_json(r) for r in items]


@app.post("/api/credit-card-repayments")
def create_repayment(
    payload: CreditCardRepaymentIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        repayment = CreditCardService(db, user.id).add_repayment(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return repayment_json(repayment)


@app.put("/api/credit-card-repayments/{repayment_id}")
def update_repayment(
    repayment_id: int,
    payload: CreditCardRepaymentIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        repayment = CreditCardService(db, user.id).update_repayment(
            repayment_id, payload
        )
    except ValueError as exc:
        raise http_error(exc) from exc
    return repayment_json(repayment)


@app.delete("/api/credit-card-repayments/{repayment_id}")
def delete_repayment(
    repayment_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        CreditCardService(db, user.id).delete_repayment(repayment_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


# Analytics


@app.get("/api/analytics")
def analytics(
    period: AnalyticsPeriod = AnalyticsPeriod.month,
    expense_filter: ShareFilter = ShareFilter.all,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return AnalyticsService(db, user.id).overview(period, expense_filter)


@app.get("/api/dashboard")
def dashboard(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = AnalyticsService(db, user.id).dashboard()
    data["recent_expenses"] = [
        expense_json(e, user.id) for e in data["recent_expenses"]
    ]
    return data


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()

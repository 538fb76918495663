import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    StreamingResponse,
)
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from amounts import (
    format_amount,
    format_currency,
    format_currency_compact,
    parse_amount,
    parse_signed_amount,
)
from chat import ChatService, setup_reply
from config import get_settings
from csrf import generate_csrf_token, require_csrf
from csv_utils import export_filename
from database import SessionLocal, session_scope
from intents import build_intent_parser
from messaging import (
    InboundMessage,
    MessageSender,
    telegram_message,
    telegram_sender,
    whatsapp_message,
    whatsapp_sender,
)
from models import AccountCategory, AccountType, BalanceMode, TransactionType
from networth import DEFAULT_SERIES_MONTHS
from periods import Period, local_today, month_period, resolve_period
from schemas import AccountIn, BalanceUpdateIn, SettingsIn, SnapshotEditIn, TransactionIn
from services import (
    AccessDenied,
    AccountService,
    BalanceService,
    CSVService,
    ReconciliationService,
    RecordNotFound,
    SettingsService,
    SnapshotService,
    StoreError,
    TransactionFilters,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Celengan")
templates = Jinja2Templates(directory="templates")

templates.env.filters["currency"] = format_currency
templates.env.filters["compact"] = format_currency_compact
templates.env.filters["amount"] = format_amount
templates.env.globals["csrf_token"] = generate_csrf_token
templates.env.globals["AccountType"] = AccountType
templates.env.globals["AccountCategory"] = AccountCategory
templates.env.globals["BalanceMode"] = BalanceMode
templates.env.globals["TransactionType"] = TransactionType


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RecordNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AccessDenied):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, StoreError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def period_from_request(request: Request) -> Period:
    try:
        return resolve_period(
            request.query_params.get("period"),
            request.query_params.get("start"),
            request.query_params.get("end"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def filters_from_request(request: Request) -> TransactionFilters:
    account_id = None
    account_param = request.query_params.get("account")
    if account_param:
        try:
            account_id = int(account_param)
        except ValueError:
            account_id = None
    txn_type = None
    type_param = request.query_params.get("type")
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError:
            txn_type = None
    return TransactionFilters(account_id=account_id, type=txn_type)


def form_amount(value: Optional[str]) -> int:
    amount = parse_amount(value)
    if amount is None:
        raise HTTPException(status_code=400, detail=f"Invalid amount: {value!r}")
    return amount


def form_signed_amount(value: Optional[str]) -> int:
    amount = parse_signed_amount(value)
    if amount is None:
        raise HTTPException(status_code=400, detail=f"Invalid amount: {value!r}")
    return amount


def render(request: Request, template: str, context: dict[str, object]) -> HTMLResponse:
    ctx = {"request": request}
    ctx.update(context)
    return templates.TemplateResponse(template, ctx)


def redirect(request: Request, route: str) -> RedirectResponse:
    return RedirectResponse(url=request.app.url_path_for(route), status_code=303)


@app.get("/", response_class=HTMLResponse)
def dashboard(request: Request, db: Session = Depends(get_db)):
    summary = ReconciliationService(db).dashboard()
    recent = TransactionService(db).recent(10, month_period())
    return render(
        request,
        "dashboard.html",
        {
            "summary": summary,
            "recent": recent,
            "accounts": AccountService(db).list_all(),
        },
    )


@app.get("/accounts", response_class=HTMLResponse)
def accounts_page(request: Request, db: Session = Depends(get_db)):
    return render(
        request,
        "accounts.html",
        {
            "accounts": AccountService(db).list_all(),
            "default_account": SettingsService(db).default_account(),
        },
    )


@app.post("/accounts")
async def create_account(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    try:
        data = AccountIn(
            name=form.get("name") or "",
            type=form.get("type"),
            category=form.get("category"),
            balance_mode=form.get("balance_mode") or BalanceMode.manual,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    AccountService(db).create(data)
    return redirect(request, "accounts_page")


@app.post("/accounts/{account_id}/balance")
async def set_account_balance(
    account_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    data = BalanceUpdateIn(balance=form_signed_amount(form.get("balance")))
    try:
        BalanceService(db).set_balance(account_id, data.balance)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return redirect(request, "accounts_page")


@app.post("/accounts/{account_id}/mode")
async def set_account_mode(
    account_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    try:
        mode = BalanceMode(form.get("balance_mode"))
        AccountService(db).set_balance_mode(account_id, mode)
    except ValueError as exc:
        raise http_error(exc) from exc
    return redirect(request, "accounts_page")


@app.post("/accounts/{account_id}/default")
async def set_default_account(
    account_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    try:
        SettingsService(db).set_default_account(account_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return redirect(request, "accounts_page")


@app.post("/accounts/{account_id}/delete")
async def delete_account(
    account_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    try:
        AccountService(db).delete(account_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return redirect(request, "accounts_page")


@app.get("/transactions", response_class=HTMLResponse)
def transactions_page(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    filters = filters_from_request(request)
    service = TransactionService(db)
    spending, income = service.totals(period)
    return render(
        request,
        "transactions.html",
        {
            "period": period,
            "filters": filters,
            "transactions": service.list(period, filters),
            "accounts": AccountService(db).list_all(),
            "spending": spending,
            "income": income,
            "today": local_today(),
        },
    )


@app.post("/transactions")
async def create_transaction(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    account_raw = (form.get("account_id") or "").strip()
    try:
        data = TransactionIn(
            description=form.get("description") or "",
            amount=form_amount(form.get("amount")),
            type=form.get("type"),
            category=form.get("category"),
            date=date.fromisoformat(form.get("date") or local_today().isoformat()),
            account_id=int(account_raw) if account_raw else None,
        )
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        TransactionService(db).create(data)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return redirect(request, "transactions_page")


@app.post("/transactions/{transaction_id}/delete")
async def delete_transaction(
    transaction_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    try:
        TransactionService(db).delete(transaction_id)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return redirect(request, "transactions_page")


@app.get("/history", response_class=HTMLResponse)
def history_page(request: Request, db: Session = Depends(get_db)):
    service = SnapshotService(db)
    account_id = filters_from_request(request).account_id
    snapshots = service.list_all(account_id)
    return render(
        request,
        "history.html",
        {
            "snapshots": snapshots,
            "chain_breaks": service.chain_breaks(),
            "accounts": AccountService(db).list_all(),
            "selected_account": account_id,
        },
    )


@app.post("/history/{snapshot_id}")
async def edit_snapshot(
    snapshot_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    data = SnapshotEditIn(
        balance_at_time=form_signed_amount(form.get("balance_at_time")),
        previous_balance=form_signed_amount(form.get("previous_balance")),
    )
    try:
        SnapshotService(db).update(snapshot_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return redirect(request, "history_page")


@app.post("/history/{snapshot_id}/delete")
async def delete_snapshot(
    snapshot_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    try:
        SnapshotService(db).delete(snapshot_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return redirect(request, "history_page")


@app.get("/settings", response_class=HTMLResponse)
def settings_page(request: Request, db: Session = Depends(get_db)):
    return render(
        request, "settings.html", {"settings": SettingsService(db).get_or_create()}
    )


@app.post("/settings")
async def save_settings(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    require_csrf(form.get("csrf_token"))
    try:
        data = SettingsIn(
            monthly_income=form_amount(form.get("monthly_income")),
            goal_target=form_amount(form.get("goal_target")),
            goal_target_date=date.fromisoformat(form.get("goal_target_date") or ""),
            telegram_username=form.get("telegram_username") or None,
            whatsapp_phone=form.get("whatsapp_phone") or None,
        )
        SettingsService(db).upsert(data)
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return redirect(request, "settings_page")


@app.get("/api/reconciliation")
def api_reconciliation(db: Session = Depends(get_db)):
    service = ReconciliationService(db)
    return {
        "global": service.global_reconciliation().as_dict(),
        "accounts": [delta.as_dict() for delta in service.account_deltas()],
    }


@app.get("/api/net-worth")
def api_net_worth(months: int = DEFAULT_SERIES_MONTHS, db: Session = Depends(get_db)):
    series = ReconciliationService(db).net_worth_series(months)
    return {"months": months, "series": [point.as_dict() for point in series]}


@app.get("/api/accounts")
def api_accounts(db: Session = Depends(get_db)):
    return [
        {
            "id": account.id,
            "name": account.name,
            "type": account.type.value,
            "category": account.category.value,
            "balance": account.balance,
            "balance_mode": account.balance_mode.value,
        }
        for account in AccountService(db).list_all()
    ]


@app.get("/api/accounts/{account_id}/history")
def api_account_history(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).get(account_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    service = SnapshotService(db)
    breaks = service.chain_breaks()
    return [
        {
            "id": snap.id,
            "balance_at_time": snap.balance_at_time,
            "previous_balance": snap.previous_balance,
            "recorded_at": snap.recorded_at.isoformat(),
            "chain_break": snap.id in breaks,
        }
        for snap in service.list_all(account_id)
    ]


@app.get("/api/transactions")
def api_transactions(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    filters = filters_from_request(request)
    try:
        limit = int(request.query_params.get("limit", "50"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid limit") from exc
    limit = min(max(limit, 1), 200)
    items = TransactionService(db).list(period, filters, limit=limit)
    return {
        "items": [
            {
                "id": txn.id,
                "date": txn.date.isoformat(),
                "type": txn.type.value,
                "amount": txn.amount,
                "description": txn.description,
                "category": txn.category,
                "account_id": txn.account_id,
            }
            for txn in items
        ],
        "period": {"start": period.start.isoformat(), "end": period.end.isoformat()},
    }


@app.get("/export.csv")
def export_csv(db: Session = Depends(get_db)):
    today = local_today()
    csv_text = CSVService(db).export(today)
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename(today)}"'
        },
    )


def chat_reply(inbound: InboundMessage, channel: str) -> str:
    with session_scope() as session:
        if channel == "Telegram":
            user_id = SettingsService.user_for_telegram(session, inbound.identity)
        else:
            user_id = SettingsService.user_for_whatsapp(session, inbound.identity)
        if user_id is None:
            logger.info(f"chat_unknown_sender: channel={channel}")
            return setup_reply(channel, inbound.text)
        chat = ChatService(
            session, user_id, build_intent_parser(settings), channel=channel
        )
        return chat.handle(inbound.text)


async def answer_chat(inbound: InboundMessage, channel: str, sender: MessageSender):
    try:
        reply = await run_in_threadpool(chat_reply, inbound, channel)
    except Exception:
        logger.exception(f"chat_reply_failed: channel={channel}")
        return JSONResponse({"ok": False}, status_code=500)
    # Past this point the update is acknowledged even if the reply is lost.
    try:
        await run_in_threadpool(sender.send, inbound.recipient, reply)
    except Exception:
        logger.exception(f"chat_send_failed: channel={channel}")
    return {"ok": True}


@app.post("/webhooks/telegram")
async def telegram_webhook(request: Request):
    try:
        inbound = telegram_message(await request.json())
    except Exception:
        logger.exception("telegram_webhook_bad_payload")
        return JSONResponse({"ok": False}, status_code=500)
    if inbound is None:
        return {"ok": True}
    return await answer_chat(inbound, "Telegram", telegram_sender(settings))


@app.get("/webhooks/whatsapp")
def whatsapp_verify(request: Request):
    params = request.query_params
    if (
        params.get("hub.mode") == "subscribe"
        and settings.whatsapp_verify_token
        and params.get("hub.verify_token") == settings.whatsapp_verify_token
    ):
        return PlainTextResponse(params.get("hub.challenge") or "")
    raise HTTPException(status_code=403, detail="Verification failed")


@app.post("/webhooks/whatsapp")
async def whatsapp_webhook(request: Request):
    try:
        inbound = whatsapp_message(await request.json())
    except Exception:
        logger.exception("whatsapp_webhook_bad_payload")
        return JSONResponse({"ok": False}, status_code=500)
    if inbound is None:
        return {"ok": True}
    return await answer_chat(inbound, "WhatsApp", whatsapp_sender(settings))


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()

"""
FastAPI REST API Module

Provides REST endpoints for the ledger operations. The caller's identity is
resolved upstream and passed in the X-Principal header. The lifespan hooks
restore the ledger snapshot at startup and write it back at shutdown.
"""

from contextlib import asynccontextmanager
from typing import Dict, Any, Optional
from fastapi import FastAPI, HTTPException, Depends, Header, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import uvicorn

from . import __version__
from .accounts import AccountRecord
from .bank import BankingSystem
from .config import get_config
from .exceptions import LedgerError
from .loans import LoanRecord
from .logging_config import setup_logging, log_action
from .staking import StakingPosition
from .storage import SQLiteStorage
from .transactions import TransactionRecord


# Pydantic models for API requests
class AmountRequest(BaseModel):
    amount: int = Field(..., description="Amount in token units")


class LoanApplicationRequest(BaseModel):
    amount: int = Field(..., description="Requested principal in token units")
    term_days: int = Field(..., description="Loan term in days")


def account_to_dict(account: AccountRecord) -> Dict[str, Any]:
    return account.to_dict()


def staking_to_dict(position: StakingPosition) -> Dict[str, Any]:
    result = position.to_dict()
    result['earned'] = position.earned
    return result


def loan_to_dict(loan_id: int, loan: LoanRecord) -> Dict[str, Any]:
    result = loan.to_dict()
    result['loan_id'] = loan_id
    return result


def transaction_to_dict(record: TransactionRecord) -> Dict[str, Any]:
    return record.to_dict()


# Dependencies
def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.banking_system


def get_principal(x_principal: str = Header(..., alias="X-Principal")) -> str:
    """Caller identity, already resolved by the transport in front of us"""
    principal = x_principal.strip()
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing principal")
    return principal


def create_app(
    system: Optional[BankingSystem] = None,
    snapshot_path: Optional[str] = None,
    persist: Optional[bool] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Banking system to serve (a fresh one when omitted)
        snapshot_path: SQLite file holding the durable snapshot
        persist: Restore/save the snapshot in the lifespan hooks
    """
    config = get_config()
    logger = setup_logging(config.log_level, "dbank", config.log_format, config.log_file)
    banking_system = system or BankingSystem(config=config)
    snapshot_path = snapshot_path or config.snapshot_path
    persist = config.snapshot_enabled if persist is None else persist

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Restore ledger state at startup and snapshot it at shutdown"""
        durable = SQLiteStorage(snapshot_path) if persist else None
        if durable is not None:
            restored = banking_system.load_snapshot(durable)
            log_action(
                logger, "info", "Startup complete",
                action="startup", resource="system",
                extra={"snapshot_path": snapshot_path, "restored": restored}
            )

        yield

        if durable is not None:
            banking_system.save_snapshot(durable)
            durable.close()
            log_action(
                logger, "info", "Shutdown snapshot written",
                action="shutdown", resource="system",
                extra={"snapshot_path": snapshot_path}
            )

    app = FastAPI(
        title="dBank Ledger API",
        description="Per-user ledger with interest, staking rewards and collateralized loans",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.banking_system = banking_system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "dbank_ledger", "version": __version__}

    @app.get("/")
    async def root():
        """Root endpoint with system information"""
        return {
            "system": "dBank Ledger",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "balance": "/balance",
                "account": "/account",
                "staking": "/staking",
                "loans": "/loans",
                "transactions": "/transactions",
                "config": "/config",
                "stats": "/stats"
            }
        }

    # Account endpoints
    @app.get("/balance")
    async def get_balance(
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Balance after pending interest"""
        return {"balance": system.get_balance(principal)}

    @app.post("/top-up")
    async def top_up(
        request: AmountRequest,
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Deposit tokens"""
        try:
            return {"balance": system.top_up(principal, request.amount)}
        except LedgerError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/withdraw")
    async def withdraw(
        request: AmountRequest,
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Withdraw tokens"""
        try:
            return {"balance": system.withdraw(principal, request.amount)}
        except LedgerError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/account")
    async def get_account_info(
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Full account record after pending interest"""
        return account_to_dict(system.get_account_info(principal))

    # Staking endpoints
    @app.post("/staking/stake")
    async def stake_tokens(
        request: AmountRequest,
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Stake tokens from the balance"""
        try:
            return {"balance": system.stake_tokens(principal, request.amount)}
        except LedgerError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/staking/unstake")
    async def unstake_tokens(
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Close the staking position"""
        try:
            return {"amount": system.unstake_tokens(principal)}
        except LedgerError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/staking")
    async def get_staking_info(
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Reward-refreshed staking position, or null"""
        position = system.get_staking_info(principal)
        return {"staking": staking_to_dict(position) if position else None}

    # Loan endpoints
    @app.post("/loans", status_code=status.HTTP_201_CREATED)
    async def apply_for_loan(
        request: LoanApplicationRequest,
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Apply for a staking-collateralized loan"""
        try:
            amount = system.apply_for_loan(principal, request.amount, request.term_days)
            return {"amount": amount, "loan_id": len(system.get_loan_history(principal)) - 1}
        except LedgerError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/loans/{loan_id}/repay")
    async def repay_loan(
        loan_id: int,
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Repay a loan in full"""
        try:
            return {"amount": system.repay_loan(principal, loan_id)}
        except LedgerError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/loans")
    async def get_loan_history(
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Loans in application order"""
        loans = system.get_loan_history(principal)
        return {"loans": [loan_to_dict(i, loan) for i, loan in enumerate(loans)]}

    # History and system information
    @app.get("/transactions")
    async def get_transaction_history(
        principal: str = Depends(get_principal),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Transactions, oldest first"""
        history = system.get_transaction_history(principal)
        return {"transactions": [transaction_to_dict(record) for record in history]}

    @app.get("/config")
    async def get_system_config(system: BankingSystem = Depends(get_banking_system)):
        """Fixed business constants"""
        return system.get_system_config().to_dict()

    @app.get("/stats")
    async def get_system_stats(system: BankingSystem = Depends(get_banking_system)):
        """Global ledger statistics"""
        return system.get_system_stats().to_dict()

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "dbank.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level="info"
    )

"""
Shared fixtures: an in-memory store, the full service graph and a small catalog
"""
import pytest
import pytest_asyncio

from models.business_account import BusinessAccountCreate, AccountStatus, BusinessType
from models.user import User
from services.container import build_services
from services.entity_store import InMemoryEntityStore
from services.rfq_aggregator import InMemoryDraftStorage

CATALOG = [
    {"product_id": "prod_runner", "name": "Trail Runner", "price": 100.0, "moq": 10},
    {"product_id": "prod_sandal", "name": "Leather Sandal", "price": 50.0, "moq": 1},
    {
        "product_id": "prod_boot",
        "name": "Work Boot",
        "price": 200.0,
        "moq": 5,
        "volume_pricing": [{"tier": "wholesaler", "price": 180.0}],
        "quantity_pricing": [
            {"min_quantity": 100, "discount": 10},
            {"min_quantity": 500, "price": 150.0},
        ],
    },
]


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def services(store):
    return build_services(store, drafts=InMemoryDraftStorage(), rfq_policy="composite", quote_validity_days=15)


@pytest.fixture
def admin():
    return User(user_id="user_admin", name="Asha Admin", email="admin@stepseva.test", role="admin")


@pytest.fixture
def buyer():
    return User(user_id="user_buyer", name="Ravi Buyer", email="ravi@shoemart.test", role="buyer")


@pytest_asyncio.fixture
async def products(store):
    for product in CATALOG:
        await store.insert("products", dict(product))
    return {p["product_id"]: p for p in CATALOG}


@pytest.fixture
def open_account(services, admin):
    """Factory for active business accounts"""
    async def _open(credit_limit=10000.0, company="Shoe Mart Pvt Ltd"):
        application = BusinessAccountCreate(company_name=company, business_type=BusinessType.RETAILER)
        account = await services.accounts.apply(application)
        await services.accounts.set_status(account.account_id, AccountStatus.ACTIVE, admin)
        return await services.ledger.set_credit_limit(account.account_id, credit_limit, actor_id=admin.user_id)
    return _open


@pytest_asyncio.fixture
async def account(open_account):
    """Active retailer account with a 10,000 credit limit"""
    return await open_account()


@pytest.fixture
def account_buyer(account):
    return User(
        user_id="user_acct_buyer",
        name="Meera Buyer",
        email="meera@shoemart.test",
        role="buyer",
        business_account_id=account.account_id,
    )

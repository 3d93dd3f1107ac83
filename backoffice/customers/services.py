# backoffice/customers/services.py

from sqlalchemy.orm import Session

from backoffice.customers.models import Customer
from backoffice.customers.schemas import CustomerCreateRequest
from backoffice.ledger.exceptions import CustomerNotFoundError
from backoffice.ledger.transactions import run_in_transaction
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)


class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def create_customer(self, request: CustomerCreateRequest, actor_id: str = "system") -> Customer:
        def work() -> Customer:
            customer = Customer(**request.model_dump(), created_by=actor_id)
            self.db.add(customer)
            self.db.flush()
            return customer

        customer = run_in_transaction(self.db, "create_customer", work)
        logger.info("Created Customer", customer_id=customer.id, name=customer.name)
        return customer

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.db.get(Customer, customer_id)
        if not customer:
            raise CustomerNotFoundError(customer_id)
        return customer

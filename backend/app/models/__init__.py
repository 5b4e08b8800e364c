from .stores import Store
from .inventory import Category, Saree, StoreInventory, StockMovement
from .sales import StoreSale, StoreSaleItem, StoreExchange, StoreExchangeReturnItem, StoreExchangeNewItem
from .documents import StockRequest
from .promotions import Promotion, PromotionProduct

__all__ = [
    'Store',
    'Category', 'Saree', 'StoreInventory', 'StockMovement',
    'StoreSale', 'StoreSaleItem',
    'StoreExchange', 'StoreExchangeReturnItem', 'StoreExchangeNewItem',
    'StockRequest',
    'Promotion', 'PromotionProduct',
]

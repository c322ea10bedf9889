"""
Test data factories for Quoting System tests
Provides factories for creating realistic request payloads
"""

import random
from typing import List, Dict, Any, Optional
from faker import Faker

# Initialize faker
fake = Faker('es_MX')

UNITS = ['kg', 'm³', 'm', 'unit', 'l', 'm²']


class MaterialFactory:
    """Factory for creating material payloads"""

    @staticmethod
    def create_material(name: str = None, unit: str = None, unit_price: float = None,
                        active: bool = True) -> Dict[str, Any]:
        """Create a single material payload"""
        return {
            'name': name or fake.unique.catch_phrase()[:100],
            'unit': unit or random.choice(UNITS),
            'unit_price': unit_price if unit_price is not None else round(random.uniform(1, 500), 2),
            'description': fake.sentence(nb_words=8)[:500],
            'active': active,
        }

    @staticmethod
    def create_materials(count: int = 5) -> List[Dict[str, Any]]:
        return [MaterialFactory.create_material() for _ in range(count)]


class QuoteFactory:
    """Factory for creating quote payloads"""

    @staticmethod
    def create_line_item(material_id: int, quantity: float = None, unit_price: Optional[float] = None,
                         custom_price: Optional[float] = None) -> Dict[str, Any]:
        item = {
            'material_id': material_id,
            'quantity': quantity if quantity is not None else round(random.uniform(1, 100), 2),
        }
        if unit_price is not None:
            item['unit_price'] = unit_price
        if custom_price is not None:
            item['custom_price'] = custom_price
        return item

    @staticmethod
    def create_quote(material_ids: List[int] = None, client: str = None, project: str = None,
                     hours: float = 0, area: float = 0) -> Dict[str, Any]:
        """Create a single quote payload"""
        return {
            'client': client or fake.name()[:100],
            'project': project or fake.sentence(nb_words=6)[:500],
            'line_items': [QuoteFactory.create_line_item(mid) for mid in (material_ids or [])],
            'labor': {'hours': hours},
            'painting': {'area_sq_meters': area},
            'notes': fake.sentence(),
        }

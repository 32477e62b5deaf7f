"""SQLite-backed catalogue: products, testimonials, knowledge base and customers."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rose.catalogue.models import Customer, KnowledgeEntry, Product, Testimonial
from rose.core.db import json_dumps, json_loads, sqlite_connection
from rose.core.errors import StoreUnavailableError


class SQLiteCatalogueStore:
    """Synchronous record store. Callers off-load calls with ``asyncio.to_thread``."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS products (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    price INTEGER NOT NULL,
                    compare_at_price INTEGER,
                    stock_quantity INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'active',
                    category TEXT NOT NULL DEFAULT '',
                    game_rules TEXT NOT NULL DEFAULT '',
                    images TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS testimonials (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_id TEXT,
                    customer_name TEXT NOT NULL,
                    content TEXT NOT NULL,
                    rating INTEGER NOT NULL DEFAULT 5,
                    location TEXT NOT NULL DEFAULT '',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS knowledge_base (
                    id TEXT PRIMARY KEY,
                    product_id TEXT,
                    question TEXT NOT NULL,
                    answer TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'general',
                    tags TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS customers (
                    phone TEXT PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    city TEXT NOT NULL,
                    address TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_testimonials_product
                    ON testimonials (product_id, created_at DESC);
                """
            )

    def _query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        try:
            with sqlite_connection(self.db_path) as conn:
                return conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> None:
        try:
            with sqlite_connection(self.db_path) as conn:
                conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def get_product(self, product_id: str) -> Product | None:
        rows = self._query("SELECT * FROM products WHERE id = ?", (product_id,))
        return _product_from_row(rows[0]) if rows else None

    def list_active_products(self, exclude_id: str | None = None, limit: int = 20) -> list[Product]:
        """Active, in-stock products ordered by newest first."""

        sql = "SELECT * FROM products WHERE status = 'active' AND stock_quantity > 0"
        params: list[Any] = []
        if exclude_id:
            sql += " AND id != ?"
            params.append(exclude_id)
        sql += " ORDER BY created_at DESC, id ASC LIMIT ?"
        params.append(limit)
        return [_product_from_row(row) for row in self._query(sql, params)]

    def list_testimonials(self, product_id: str | None = None, limit: int = 5) -> list[Testimonial]:
        sql = "SELECT * FROM testimonials WHERE is_active = 1"
        params: list[Any] = []
        if product_id:
            sql += " AND (product_id = ? OR product_id IS NULL)"
            params.append(product_id)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        return [
            Testimonial(
                customer_name=row["customer_name"],
                content=row["content"],
                rating=row["rating"],
                product_id=row["product_id"],
                location=row["location"],
            )
            for row in self._query(sql, params)
        ]

    def list_knowledge(self, product_id: str | None = None) -> list[KnowledgeEntry]:
        sql = "SELECT * FROM knowledge_base WHERE is_active = 1"
        params: list[Any] = []
        if product_id:
            sql += " AND (product_id = ? OR product_id IS NULL)"
            params.append(product_id)
        sql += " ORDER BY id ASC"
        return [
            KnowledgeEntry(
                id=row["id"],
                question=row["question"],
                answer=row["answer"],
                category=row["category"],
                tags=json_loads(row["tags"], default=[]),
                product_id=row["product_id"],
            )
            for row in self._query(sql, params)
        ]

    def find_customer(self, phone: str) -> Customer | None:
        rows = self._query("SELECT * FROM customers WHERE phone = ?", (phone,))
        if not rows:
            return None
        row = rows[0]
        return Customer(
            phone=row["phone"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            city=row["city"],
            address=row["address"],
        )

    def upsert_customer(self, customer: Customer) -> None:
        self._execute(
            """
            INSERT INTO customers (phone, first_name, last_name, city, address, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(phone) DO UPDATE SET
                first_name=excluded.first_name,
                last_name=excluded.last_name,
                city=excluded.city,
                address=excluded.address,
                updated_at=excluded.updated_at
            """,
            (
                customer.phone,
                customer.first_name,
                customer.last_name,
                customer.city,
                customer.address,
                _now_iso(),
            ),
        )

    def upsert_product(self, product: Product) -> None:
        self._execute(
            """
            INSERT INTO products (
                id, name, description, price, compare_at_price, stock_quantity,
                status, category, game_rules, images, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name,
                description=excluded.description,
                price=excluded.price,
                compare_at_price=excluded.compare_at_price,
                stock_quantity=excluded.stock_quantity,
                status=excluded.status,
                category=excluded.category,
                game_rules=excluded.game_rules,
                images=excluded.images
            """,
            (
                product.id,
                product.name,
                product.description,
                product.price,
                product.compare_at_price,
                product.stock_quantity,
                product.status,
                product.category,
                product.game_rules,
                json_dumps(product.images),
                _now_iso(),
            ),
        )

    def add_testimonial(self, testimonial: Testimonial) -> None:
        self._execute(
            """
            INSERT INTO testimonials (product_id, customer_name, content, rating, location, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                testimonial.product_id,
                testimonial.customer_name,
                testimonial.content,
                testimonial.rating,
                testimonial.location,
                _now_iso(),
            ),
        )

    def upsert_knowledge(self, entry: KnowledgeEntry) -> None:
        self._execute(
            """
            INSERT INTO knowledge_base (id, product_id, question, answer, category, tags)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                product_id=excluded.product_id,
                question=excluded.question,
                answer=excluded.answer,
                category=excluded.category,
                tags=excluded.tags
            """,
            (
                entry.id,
                entry.product_id,
                entry.question,
                entry.answer,
                entry.category,
                json_dumps(entry.tags),
            ),
        )

    def count_products(self) -> int:
        rows = self._query("SELECT COUNT(*) AS total FROM products")
        return int(rows[0]["total"])


def _product_from_row(row: sqlite3.Row) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        price=int(row["price"]),
        description=row["description"],
        stock_quantity=int(row["stock_quantity"]),
        status=row["status"],
        category=row["category"],
        game_rules=row["game_rules"],
        compare_at_price=row["compare_at_price"],
        images=json_loads(row["images"], default=[]),
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

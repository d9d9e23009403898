"""
Category and type management.

A category owns its types and an SVG icon hosted on Cloudinary. The icon is
not covered by the database transaction, so:

- on create, a failed write deletes the freshly uploaded icon;
- on update, the new icon is uploaded first and the old one is deleted only
  after the update has committed. A failed update deletes the new icon and
  leaves the old icon and record untouched.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

from database import Database, serialize, to_object_id
from errors import (
    AssetStoreError,
    IntegrityError,
    InvalidRequestError,
    MissingParentError,
    NotFoundError,
    log_failure,
)
from saga import Compensation
from schemas import SECTIONS, Category, CategoryInput, Icon, MutationResult, Type
from users import require_role

logger = logging.getLogger(__name__)

COLLECTION = "category"
TYPES = "type"
ICON_FOLDER = "icons"

RIDING_STYLES = ["Adventure", "Racing", "Touring", "Urban", "Enduro"]


def _slugify(name: str) -> str:
    return "-".join(name.lower().split())


def _upload_icon(assets, data: CategoryInput, compensation: Compensation) -> Icon:
    uploaded = assets.upload(data.icon, ICON_FOLDER, desired_id=data.name, resource_type="raw")
    if uploaded is None:
        raise AssetStoreError("Failed to upload the category icon.")
    compensation.push(f"delete icon {uploaded.public_id}", assets.delete, uploaded.public_id, uploaded.resource_type)
    logger.info("Icon uploaded: %s", uploaded.public_id)
    return Icon(**uploaded.model_dump())


def create_category(database: Database, assets, user_id: Optional[str],
                    payload: Union[CategoryInput, dict]) -> MutationResult:
    compensation = Compensation()
    try:
        data = payload if isinstance(payload, CategoryInput) else CategoryInput.model_validate(payload)
        db = database.db
        require_role(db, user_id, "admin")
        if data.icon is None:
            raise InvalidRequestError("A category icon is required.")
        if data.section not in SECTIONS:
            raise InvalidRequestError(f"Unknown section {data.section!r}.")

        with database.transaction() as session:
            icon = _upload_icon(assets, data, compensation)

            category = Category(name=data.name, slug=data.slug, section=data.section, icon=icon)
            category_id = database.create_document(COLLECTION, category, session=session)
            logger.info("Category %s saved", category_id)

            type_ids = []
            for item in data.types:
                type_doc = Type(name=item.name, slug=item.slug, category=category_id)
                type_ids.append(database.create_document(TYPES, type_doc, session=session))

            if type_ids:
                linked = db[COLLECTION].update_one(
                    {"_id": category_id}, {"$set": {"applicable_types": type_ids}}, session=session
                )
                if linked.matched_count == 0:
                    db[TYPES].delete_many({"_id": {"$in": type_ids}}, session=session)
                    raise IntegrityError("Failed to link types to the new category.")

            created = db[COLLECTION].find_one({"_id": category_id}, session=session)
    except Exception as exc:
        reason, message = log_failure("create category", exc)
        compensation.rollback()
        return MutationResult.failed(reason, message)

    compensation.clear()
    return MutationResult(success=True, message="Category created.", data=serialize(created))


def update_category(database: Database, assets, user_id: Optional[str], category_id: Optional[str],
                    payload: Union[CategoryInput, dict]) -> MutationResult:
    compensation = Compensation()
    new_icon = None
    old_icon = None
    try:
        data = payload if isinstance(payload, CategoryInput) else CategoryInput.model_validate(payload)
        db = database.db
        require_role(db, user_id, "admin")
        if not category_id:
            raise MissingParentError("Category ID is required for creating new types.")
        cid = to_object_id(category_id, "category id")
        if data.section not in SECTIONS:
            raise InvalidRequestError(f"Unknown section {data.section!r}.")

        if data.icon is not None:
            new_icon = _upload_icon(assets, data, compensation)

        with database.transaction() as session:
            existing = db[COLLECTION].find_one({"_id": cid}, session=session)
            if not existing:
                raise NotFoundError("Category not found.")
            old_icon = existing.get("icon")

            kept = [(item, to_object_id(item.id, "type id")) for item in data.types if item.id]
            kept_ids = [type_id for _, type_id in kept]

            dropped_ids = [
                t["_id"] for t in db[TYPES].find({"category": cid, "_id": {"$nin": kept_ids}}, session=session)
            ]
            if dropped_ids:
                in_use = db["product"].count_documents({"type": {"$in": dropped_ids}}, session=session)
                if in_use:
                    raise InvalidRequestError(
                        f"Cannot remove types still used by {in_use} product(s). Move those products first."
                    )
                db[TYPES].delete_many({"_id": {"$in": dropped_ids}}, session=session)
                logger.info("Removed %d type(s) from category %s", len(dropped_ids), cid)

            for item, type_id in kept:
                renamed = db[TYPES].update_one(
                    {"_id": type_id, "category": cid},
                    {"$set": {"name": item.name, "slug": item.slug}},
                    session=session,
                )
                if renamed.matched_count == 0:
                    raise NotFoundError(f"Type {item.id} does not belong to this category.")

            new_ids = [
                database.create_document(TYPES, Type(name=item.name, slug=item.slug, category=cid), session=session)
                for item in data.types
                if not item.id
            ]

            changes = {
                "name": data.name,
                "slug": data.slug,
                "section": data.section,
                "applicable_types": kept_ids + new_ids,
                "updated_at": datetime.now(timezone.utc),
            }
            if new_icon is not None:
                changes["icon"] = new_icon.model_dump()
            updated = db[COLLECTION].update_one({"_id": cid}, {"$set": changes}, session=session)
            if updated.matched_count == 0:
                raise IntegrityError("Failed to update category.")

            result = db[COLLECTION].find_one({"_id": cid}, session=session)
    except Exception as exc:
        reason, message = log_failure("update category", exc)
        compensation.rollback()
        return MutationResult.failed(reason, message)

    compensation.clear()
    # The new icon is committed; the old one is now unreferenced
    if new_icon is not None and old_icon and old_icon.get("public_id"):
        if not assets.delete(old_icon["public_id"], old_icon.get("resource_type", "raw")):
            logger.warning("Old icon %s was not deleted. Manual cleanup may be required.", old_icon["public_id"])

    return MutationResult(success=True, message="Category updated.", data=serialize(result))


def _with_types(db, categories: List[dict]) -> List[dict]:
    type_ids = [tid for c in categories for tid in c.get("applicable_types", [])]
    types = {}
    if type_ids:
        types = {t["_id"]: t for t in db[TYPES].find({"_id": {"$in": type_ids}})}
    for category in categories:
        category["applicable_types"] = [types[t] for t in category.get("applicable_types", []) if t in types]
    return categories


def list_categories(db) -> List[dict]:
    categories = list(db[COLLECTION].find({}).sort("name", 1))
    return [serialize(c) for c in _with_types(db, categories)]


def get_category(db, id_or_slug: str) -> Optional[dict]:
    query = {"slug": id_or_slug}
    if len(id_or_slug) == 24:
        try:
            query = {"$or": [{"_id": to_object_id(id_or_slug)}, {"slug": id_or_slug}]}
        except InvalidRequestError:
            pass
    category = db[COLLECTION].find_one(query)
    if not category:
        return None
    return serialize(_with_types(db, [category])[0])


def list_sections(db) -> List[dict]:
    """Navigation tree: fixed sections, each with its categories."""
    sections = {name: [] for name in SECTIONS}
    sections["Riding Style"] = [
        {"name": style, "slug": _slugify(style), "section": "Riding Style", "icon": {"secure_url": "", "public_id": ""}}
        for style in RIDING_STYLES
    ]

    for category in list_categories(db):
        target = sections.get(category.get("section"))
        if target is None:
            logger.warning('Category "%s" has section "%s" which is not predefined.',
                           category.get("name"), category.get("section"))
            continue
        target.append(category)

    # Helmets are browsed by their types directly
    helmets = next((c for c in sections["Riding Gear"] if c.get("name") == "Helmets"), None)
    if helmets:
        sections["Helmets"].extend(helmets.get("applicable_types", []))

    return [
        {"name": name, "section": name, "slug": _slugify(name), "categories": categories}
        for name, categories in sections.items()
    ]

"""People search — encrypted query parameters.

/people binds a query model; /people/by-name binds plain parameters.
Both run through EncryptedQueryRoute, so only the Encrypted fields are
decrypted when the schema-driven strategy is configured.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from urlcrypt.middleware import EncryptedQueryRoute
from urlcrypt.schema import Encrypted

router = APIRouter(prefix="/people", tags=["people"], route_class=EncryptedQueryRoute)


class PersonQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    last_name: Annotated[str | None, Field(alias="lastName"), Encrypted()] = None
    first_name: Annotated[str | None, Field(alias="firstName")] = None
    date_of_birth: Annotated[date | None, Field(alias="dob"), Encrypted()] = None


@router.get("")
def search_people(person: Annotated[PersonQuery, Query()]):
    return {
        "lastName": person.last_name,
        "firstName": person.first_name,
        "dob": person.date_of_birth.isoformat() if person.date_of_birth else None,
    }


@router.get("/by-name")
def search_by_name(
    last_name: Annotated[str | None, Query(alias="lastName"), Encrypted()] = None,
    first_name: Annotated[str | None, Query(alias="firstName")] = None,
    nickname: Annotated[str | None, Query(), Encrypted(ignore_warning=True)] = None,
):
    return {"lastName": last_name, "firstName": first_name, "nickname": nickname}

from typing import List

from fastapi import APIRouter, Depends, status

from craftstore.core.errors import NotFoundError
from craftstore.dependencies import get_current_user, get_wishlists
from craftstore.repositories.wishlists import WishlistRepository
from craftstore.schemas import RemovalResult, UserOut, WishlistAdd, WishlistEntryOut

router = APIRouter(prefix="/api/wishlist", tags=["Wishlist"])


@router.get("", response_model=List[WishlistEntryOut])
def list_wishlist(
    user: UserOut = Depends(get_current_user),
    wishlists: WishlistRepository = Depends(get_wishlists),
):
    return wishlists.list_for_user(user.id)


@router.post("", response_model=WishlistEntryOut, status_code=status.HTTP_201_CREATED)
def add_to_wishlist(
    payload: WishlistAdd,
    user: UserOut = Depends(get_current_user),
    wishlists: WishlistRepository = Depends(get_wishlists),
):
    return wishlists.add(user.id, payload.product_id)


@router.delete("/{product_id}", response_model=RemovalResult)
def remove_from_wishlist(
    product_id: str,
    user: UserOut = Depends(get_current_user),
    wishlists: WishlistRepository = Depends(get_wishlists),
):
    if not wishlists.remove(user.id, product_id):
        raise NotFoundError("Wishlist item", product_id)
    return RemovalResult(success=True)

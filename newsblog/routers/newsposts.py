from fastapi import APIRouter, Depends
from newsblog.dependencies import (
    PaginationParams,
    get_current_user_id,
    get_optional_user_id,
    get_posts_service,
)
from newsblog.schemas import CategoryResponse, PaginatedPosts, PostCreate, PostResponse, PostUpdate
from newsblog.services.posts_service import PostsService

router = APIRouter(prefix="/api/newsposts", tags=["newsposts"])

@router.get("", response_model=PaginatedPosts)
async def list_posts(
    pagination: PaginationParams = Depends(),
    user_id: str | None = Depends(get_optional_user_id),
    service: PostsService = Depends(get_posts_service),
):
    return await service.get_all_posts(pagination.page, pagination.size, pagination.category, user_id)

# Declared before "/{post_id}" so "categories" is not taken for an id.
@router.get("/categories", response_model=list[CategoryResponse], tags=["categories"])
async def list_categories(service: PostsService = Depends(get_posts_service)):
    return await service.get_categories()

@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    service: PostsService = Depends(get_posts_service),
):
    return await service.get_post_by_id(post_id, user_id)

@router.post("", status_code=201, response_model=PostResponse)
async def create_post(
    data: PostCreate,
    user_id: str = Depends(get_current_user_id),
    service: PostsService = Depends(get_posts_service),
):
    return await service.create_post(data, user_id)

@router.put("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: str,
    data: PostUpdate,
    user_id: str = Depends(get_current_user_id),
    service: PostsService = Depends(get_posts_service),
):
    return await service.update_post(post_id, data, user_id)

@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PostsService = Depends(get_posts_service),
):
    await service.delete_post(post_id, user_id)

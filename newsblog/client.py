"""
Typed async client for the posts API and the user service.

Responses are parsed into the pydantic schemas from ``newsblog.schemas``;
any non-2xx response raises ``httpx.HTTPStatusError``.  Pass an httpx
``transport`` (e.g. ``httpx.ASGITransport(app=...)``) to talk to an
in-process app.
"""
import jwt
import httpx

from newsblog.schemas import (
    AuthResponse,
    CategoryResponse,
    PaginatedPosts,
    PostCreate,
    PostResponse,
    PostUpdate,
    UserEnvelope,
)


class _BaseAPI:
    def __init__(self, base_url: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response

    def _headers(self) -> dict[str, str]:
        return {}


class NewsAPI(_BaseAPI):
    """Client for ``/api/newsposts``; *base_url* is the API root (``.../api``)."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000/api",
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, transport)
        self.token = token

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def get_all_posts(self, page: int = 0, size: int = 10, category: str | None = None) -> PaginatedPosts:
        params: dict[str, str | int] = {"page": page, "size": size}
        if category:
            params["category"] = category
        response = await self._request("GET", "/newsposts", params=params)
        return PaginatedPosts.model_validate(response.json())

    async def get_post_by_id(self, post_id: str) -> PostResponse:
        response = await self._request("GET", f"/newsposts/{post_id}")
        return PostResponse.model_validate(response.json())

    async def create_post(self, post: PostCreate) -> PostResponse:
        response = await self._request("POST", "/newsposts", json=post.model_dump(exclude_unset=True))
        return PostResponse.model_validate(response.json())

    async def update_post(self, post_id: str, post: PostUpdate) -> PostResponse:
        response = await self._request("PUT", f"/newsposts/{post_id}", json=post.model_dump(exclude_unset=True))
        return PostResponse.model_validate(response.json())

    async def delete_post(self, post_id: str) -> None:
        await self._request("DELETE", f"/newsposts/{post_id}")

    async def get_categories(self) -> list[CategoryResponse]:
        response = await self._request("GET", "/newsposts/categories")
        return [CategoryResponse.model_validate(c) for c in response.json()]


class AuthAPI(_BaseAPI):
    """Client for the user service."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, transport)

    async def register(self, email: str, password: str, confirm_password: str) -> AuthResponse:
        response = await self._request(
            "POST",
            "/users/create",
            json={"email": email, "password": password, "confirmPassword": confirm_password},
        )
        return AuthResponse.model_validate(response.json())

    async def login(self, email: str, password: str) -> AuthResponse:
        response = await self._request("POST", "/users/login", json={"email": email, "password": password})
        return AuthResponse.model_validate(response.json())

    async def get_current_user(self, token: str) -> UserEnvelope:
        """
        Fetch the profile of the token's owner.

        The token is only read here, not verified; the services verify
        it on every authenticated request.
        """
        payload = jwt.decode(token, options={"verify_signature": False})
        user_id = payload.get("userId")
        if not user_id:
            raise ValueError("User ID not found in token")
        return await self.get_user_by_id(user_id)

    async def get_user_by_id(self, user_id: str) -> UserEnvelope:
        response = await self._request("GET", f"/users/{user_id}")
        return UserEnvelope.model_validate(response.json())

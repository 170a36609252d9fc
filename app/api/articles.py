from typing import List, Optional

from fastapi import APIRouter, File, Form, Response, UploadFile, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import AssetsDep, CurrentUser, SessionDep, SettingsDep
from app.core.config import Settings
from app.core.errors import CreateFailed, DeleteFailed, UpdateFailed, ValidationFailed
from app.models.article import Article
from app.schemas.article import ArticleForm, ArticleResponse
from app.schemas.auth import MutationResponse
from app.services.assets import ResourceKind
from app.services.resources import delete_with_asset, get_or_404, persist_with_asset, require_upload
from app.services.validation import check_range, check_unique


router = APIRouter(prefix="/articles", tags=["articles"])


def check_article_data(form: ArticleForm, settings: Settings) -> None:
    messages = settings.MESSAGES
    low, high = settings.STRING_MIN, settings.STRING_MAX
    if not check_range(form.name, low, high) or not check_range(form.category, low, high):
        raise ValidationFailed(messages.CHECK_NAME)
    if not check_range(form.text, low, settings.TEXT_MAX) or not check_range(form.alt, low, high):
        raise ValidationFailed(messages.CHECK_TEXT)
    if not check_range(form.url, low, high):
        raise ValidationFailed(messages.CHECK_URL)
    if form.likes is not None and form.likes < 0:
        raise ValidationFailed(messages.CHECK_TEXT)


def check_article_unique(db: Session, name: str, settings: Settings, exclude_id: Optional[int] = None) -> None:
    query = db.query(Article).filter(Article.name == name)
    if exclude_id is not None:
        query = query.filter(Article.id != exclude_id)
    for article in query.all():
        if check_unique(article, name=name):
            raise ValidationFailed(settings.MESSAGES.DISPO_NAME)


def _form(name: str, text: str, alt: str, url: str, category: str, likes: Optional[int] = None) -> ArticleForm:
    return ArticleForm(
        name=name.strip(),
        text=text.strip(),
        alt=alt.strip(),
        url=url.strip(),
        category=category.strip(),
        likes=likes,
    )


@router.get("", response_model=List[ArticleResponse])
def list_articles(db: SessionDep) -> List[Article]:
    return db.query(Article).order_by(Article.created_at.desc(), Article.id.desc()).all()


@router.get("/{article_id}", response_model=ArticleResponse)
def read_article(article_id: int, db: SessionDep, settings: SettingsDep) -> Article:
    return get_or_404(db, Article, article_id, settings.MESSAGES.ARTICLE_NOT_FOUND)


@router.post("", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
async def create_article(
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
    name: str = Form(...),
    text: str = Form(...),
    alt: str = Form(...),
    url: str = Form(...),
    category: str = Form(...),
    image: UploadFile = File(...),
) -> MutationResponse:
    form = _form(name, text, alt, url, category)
    messages = settings.MESSAGES
    check_article_data(form, settings)
    await run_in_threadpool(check_article_unique, db, form.name, settings)
    require_upload(image, messages.FILE_REQUIRED)

    article = Article(
        name=form.name,
        text=form.text,
        alt=form.alt,
        url=form.url,
        category=form.category,
        likes=0,
    )
    await persist_with_asset(
        db,
        article,
        assets=assets,
        kind=ResourceKind.ARTICLES,
        upload=image,
        stem=form.name,
        field="image",
        thumbnail_field="thumbnail",
        failure=CreateFailed,
        failure_message=messages.ARTICLE_NOT_CREATED,
        conflicts={"name": messages.DISPO_NAME},
    )
    return MutationResponse(message=messages.ARTICLE_CREATED, id=article.id)


@router.put("/{article_id}", response_model=MutationResponse)
async def update_article(
    article_id: int,
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
    name: str = Form(...),
    text: str = Form(...),
    alt: str = Form(...),
    url: str = Form(...),
    category: str = Form(...),
    likes: Optional[int] = Form(None),
    image: Optional[UploadFile] = File(None),
) -> MutationResponse:
    form = _form(name, text, alt, url, category, likes)
    messages = settings.MESSAGES
    article = await run_in_threadpool(get_or_404, db, Article, article_id, messages.ARTICLE_NOT_FOUND)
    check_article_data(form, settings)
    await run_in_threadpool(check_article_unique, db, form.name, settings, article_id)

    article.name = form.name
    article.text = form.text
    article.alt = form.alt
    article.url = form.url
    article.category = form.category
    if form.likes is not None:
        article.likes = form.likes
    await persist_with_asset(
        db,
        article,
        assets=assets,
        kind=ResourceKind.ARTICLES,
        upload=image,
        stem=form.name,
        field="image",
        thumbnail_field="thumbnail",
        failure=UpdateFailed,
        failure_message=messages.ARTICLE_NOT_UPDATED,
        conflicts={"name": messages.DISPO_NAME},
    )
    return MutationResponse(message=messages.ARTICLE_UPDATED, id=article.id)


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_article(
    article_id: int,
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
) -> Response:
    article = await run_in_threadpool(get_or_404, db, Article, article_id, settings.MESSAGES.ARTICLE_NOT_FOUND)
    await delete_with_asset(
        db,
        article,
        assets=assets,
        kind=ResourceKind.ARTICLES,
        field="image",
        failure=DeleteFailed,
        failure_message=settings.MESSAGES.ARTICLE_NOT_DELETED,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)

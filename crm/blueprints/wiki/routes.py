"""
Knowledge base. Staff write articles; clients read published ones only.
"""

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import WikiArticle
from ...search import filter_exact, filter_records
from ...security import WRITE, can, permission_required, record_access_required, scope_query
from ...utils import form_bool, form_str

logger = logging.getLogger(__name__)

wiki_bp = Blueprint("wiki", __name__, url_prefix="/wiki")

SEARCH_FIELDS = ("title", "content", "category")


def _load_article(article_id: int, **_: object) -> WikiArticle:
    return WikiArticle.query.get_or_404(article_id)


def _apply_form(article: WikiArticle) -> str | None:
    title = form_str("title")
    content = form_str("content")
    if not title or not content:
        return "Title and content are required."

    article.title = title
    article.content = content
    article.category = form_str("category")
    article.is_published = form_bool("is_published")
    return None


@wiki_bp.route("/")
@login_required
@permission_required("wiki")
def list_articles():
    q = (request.args.get("q") or "").strip()
    category = (request.args.get("category") or "all").strip()

    articles = scope_query(WikiArticle.query, WikiArticle).order_by(WikiArticle.updated_at.desc()).all()
    categories = sorted({a.category for a in articles if a.category})

    articles = filter_records(articles, q, SEARCH_FIELDS)
    articles = filter_exact(articles, "category", category)

    return render_template(
        "wiki/list.html",
        articles=articles,
        q=q,
        category_filter=category,
        categories=categories,
        allow_edit=can("wiki", WRITE),
    )


@wiki_bp.route("/<int:article_id>")
@login_required
@permission_required("wiki")
@record_access_required(_load_article)
def view_article(article_id: int):
    article = WikiArticle.query.get_or_404(article_id)
    return render_template("wiki/view.html", article=article, allow_edit=can("wiki", WRITE))


@wiki_bp.route("/new", methods=["GET", "POST"])
@login_required
@permission_required("wiki", WRITE)
def create_article():
    if request.method == "POST":
        article = WikiArticle(author_id=current_user.id)
        error = _apply_form(article)
        if error:
            flash(error, "danger")
            return render_template("wiki/form.html", article=None), 400

        try:
            db.session.add(article)
            db.session.flush()
            log_action(article, "CREATE", after=serialize_model(article))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create wiki article")
            flash("Failed to create article.", "danger")
            return redirect(url_for("wiki.create_article"))

        flash("Article created.", "success")
        return redirect(url_for("wiki.view_article", article_id=article.id))

    return render_template("wiki/form.html", article=None)


@wiki_bp.route("/<int:article_id>/edit", methods=["GET", "POST"])
@login_required
@permission_required("wiki", WRITE)
def edit_article(article_id: int):
    article = WikiArticle.query.get_or_404(article_id)

    if request.method == "POST":
        before_snapshot = serialize_model(article)

        error = _apply_form(article)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("wiki.edit_article", article_id=article_id))

        try:
            db.session.flush()
            log_action(article, "UPDATE", before=before_snapshot, after=serialize_model(article))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to update wiki article %s", article_id)
            flash("Failed to update article.", "danger")
            return redirect(url_for("wiki.edit_article", article_id=article_id))

        flash("Article updated.", "success")
        return redirect(url_for("wiki.view_article", article_id=article.id))

    return render_template("wiki/form.html", article=article)

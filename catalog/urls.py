from django.urls import path
from . import views

urlpatterns = [
    path('books/', views.book_create, name='book-create'),
    path('duplicates/', views.duplicate_check, name='book-duplicates'),
    path('books/<slug:slug>/', views.book_detail, name='book-detail'),
    path('books/<slug:slug>/tags/', views.book_add_tag, name='book-add-tag'),
    path('books/<slug:slug>/tags/<int:tag_id>/remove/', views.book_remove_tag, name='book-remove-tag'),
    path('books/<slug:slug>/axes/', views.book_set_axes, name='book-set-axes'),
    path('books/<slug:slug>/evidence/', views.book_add_evidence, name='book-add-evidence'),
    path('books/<slug:slug>/standout-quotes/', views.book_add_standout_quote, name='book-add-standout-quote'),
    path('evidence/<int:evidence_id>/delete/', views.evidence_delete, name='evidence-delete'),
]

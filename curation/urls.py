from django.urls import path
from . import views

urlpatterns = [
    path('books/<slug:slug>/validation/', views.book_validation, name='book-validation'),
    path('books/<slug:slug>/preview/', views.book_preview, name='book-preview'),
    path('books/<slug:slug>/publish/', views.book_publish, name='book-publish'),
    path('intakes/', views.intake_list, name='intake-list'),
    path('intakes/submit/', views.intake_submit, name='intake-submit'),
    path('intakes/<int:intake_id>/approve/', views.intake_approve, name='intake-approve'),
    path('intakes/<int:intake_id>/reject/', views.intake_reject, name='intake-reject'),
    path('tag-submissions/', views.tag_submission_create, name='tag-submission-create'),
    path('tag-submissions/<int:submission_id>/decide/', views.tag_submission_decide, name='tag-submission-decide'),
]

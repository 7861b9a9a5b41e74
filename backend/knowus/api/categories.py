from flask import Blueprint, jsonify
from knowus.services import get_services


categories = Blueprint('categories', __name__)


@categories.route('', methods=['GET'])
def list_categories():
    return jsonify(get_services().categories.get_all())


@categories.route('/<string:category_id>', methods=['GET'])
def get_category(category_id):
    category = get_services().categories.get(category_id)
    if not category:
        return jsonify({'error': 'Category not found'}), 404
    return jsonify(category)

from flask import (Flask, render_template, request, redirect, url_for, session, jsonify, flash, Response,
                   abort, stream_with_context)
from werkzeug.security import generate_password_hash, check_password_hash
from pymongo.errors import PyMongoError
from dataclasses import asdict
from datetime import datetime, timedelta
from functools import wraps
import json
import logging
import queue

from config import Config
from database import StoreDatabase
from models import (ALL_CATEGORIES, PRODUCT_CATEGORIES, SORT_OPTIONS, SHIPPING_COSTS, Order, OrderStatus, Product,
                    Wilaya, catalog_categories, dashboard_stats, filter_and_sort, order_total, shipping_cost)
from notifications import format_price, send_order_to_telegram
from insights import get_ai_insights, EMPTY_MESSAGE, FALLBACK_MESSAGE
from catalog_import import ProductImporter, REQUIRED_COLUMNS, OPTIONAL_COLUMNS

logging.basicConfig(level=Config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

app = Flask(__name__)
app.secret_key = Config.SESSION_SECRET
app.config['MAX_CONTENT_LENGTH'] = Config.MAX_UPLOAD_MB * 1024 * 1024
app.permanent_session_lifetime = timedelta(hours=12)

# Database Setup
store = StoreDatabase.from_uri(Config.MONGODB_URI, Config.MONGODB_DB)

ADMIN_PASSWORD_HASH = generate_password_hash(Config.ADMIN_PASSWORD)

DB_ERROR_MESSAGE = 'تعذر الاتصال بقاعدة البيانات حالياً. يرجى المحاولة بعد قليل.'
CHECKOUT_MISSING_FIELDS = 'يرجى ملء كافة الحقول المطلوبة'
CHECKOUT_FAILED = 'حدث خطأ أثناء إرسال الطلب. يرجى المحاولة لاحقاً.'
SAVE_FAILED = 'حدث خطأ أثناء الحفظ'
SSE_KEEPALIVE_SECONDS = 15


# ==================== ADMIN DECORATOR ====================
def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('is_admin', False):
            if request.path.startswith('/admin/api') or request.path.startswith('/api'):
                return jsonify({'success': False, 'message': 'Admin access required'}), 401
            flash('يرجى إدخال رمز الوصول', 'error')
            return redirect(url_for('admin_login', next=request.path))

        return f(*args, **kwargs)

    return decorated_function


# ==================== HELPER FUNCTIONS ====================
def product_to_json(product):
    data = asdict(product)
    data['created_at'] = product.created_at.isoformat() if product.created_at else None
    return data


def order_to_json(order):
    data = asdict(order)
    data['status'] = order.status.value
    data['created_at'] = order.created_at.isoformat() if order.created_at else None
    return data


def load_product_or_404(product_id):
    try:
        product = store.get_product(product_id)
    except PyMongoError as e:
        app.logger.error('Product %s lookup failed: %s', product_id, e)
        abort(503)
    if not product:
        abort(404)
    return product


def load_admin_snapshot():
    """Products and orders for the dashboard, or empty lists with a flash on DB failure."""
    try:
        return store.list_products(), store.list_orders()
    except PyMongoError as e:
        app.logger.error('Dashboard data load failed: %s', e)
        flash(DB_ERROR_MESSAGE, 'error')
        return [], []


def generate_insight():
    products, orders = load_admin_snapshot()
    text = get_ai_insights(products, orders) or EMPTY_MESSAGE
    if text in (FALLBACK_MESSAGE, EMPTY_MESSAGE):
        return {'text': text, 'created_at': None}
    try:
        return store.save_insight(text)
    except PyMongoError as e:
        app.logger.error('Could not store insight report: %s', e)
        return {'text': text, 'created_at': datetime.now()}


def stream_snapshots(listen, serialize):
    """Server-sent events carrying every snapshot the listener delivers."""
    events = queue.Queue()
    unsubscribe = listen(
        lambda snapshot: events.put(('snapshot', snapshot)),
        lambda exc: events.put(('warning', str(exc)))
    )
    try:
        while True:
            try:
                kind, payload = events.get(timeout=SSE_KEEPALIVE_SECONDS)
            except queue.Empty:
                yield ': keep-alive\n\n'
                continue
            if kind == 'warning':
                yield f'event: warning\ndata: {json.dumps({"message": payload}, ensure_ascii=False)}\n\n'
            else:
                body = json.dumps([serialize(item) for item in payload], ensure_ascii=False)
                yield f'data: {body}\n\n'
    finally:
        unsubscribe()


def render_checkout(product, form, status=200):
    try:
        selected = Wilaya.parse(form.get('wilaya'))
    except ValueError:
        selected = Wilaya.ALGER
    shipping = shipping_cost(selected)
    return render_template('checkout.html',
                           product=product,
                           form=form,
                           wilayas=list(Wilaya),
                           shipping_table={w.value: SHIPPING_COSTS.get(w, SHIPPING_COSTS['default'])
                                           for w in Wilaya},
                           shipping=shipping,
                           total=order_total(product, selected)), status


def render_product_form(product, form, status=200):
    return render_template('admin/product_form.html',
                           product=product,
                           form=form,
                           categories=PRODUCT_CATEGORIES), status


def safe_next_url(value):
    if value and value.startswith('/admin') and not value.startswith('//'):
        return value
    return url_for('admin_dashboard')


@app.errorhandler(413)
def request_entity_too_large(error):
    if request.path.startswith('/admin'):
        flash(f'الملف كبير جداً. الحد الأقصى هو {Config.MAX_UPLOAD_MB} ميغابايت.', 'error')
        return redirect(url_for('admin_bulk_upload'))
    return 'File too large', 413


@app.errorhandler(503)
def service_unavailable(error):
    if request.path.startswith('/api') or request.path.startswith('/admin/api'):
        return jsonify({'success': False, 'message': DB_ERROR_MESSAGE}), 503
    return render_template('503.html', message=DB_ERROR_MESSAGE), 503


@app.errorhandler(404)
def page_not_found(error):
    if request.path.startswith('/api') or request.path.startswith('/admin/api'):
        return jsonify({'success': False, 'message': 'Not found'}), 404
    return render_template('404.html'), 404


# ==================== JINJA FILTERS ====================
@app.template_filter('format_number')
def format_number(value):
    """Format number with commas"""
    if value is None:
        return value
    return format_price(value)


@app.template_filter('dzd')
def format_dzd(value):
    return f'{format_number(value)} دج'


@app.context_processor
def inject_storefront_meta():
    pending = 0
    if session.get('is_admin'):
        try:
            pending = store.orders.count_documents({'status': OrderStatus.PENDING.value})
        except PyMongoError:
            pending = 0
    return {
        'instagram_url': Config.INSTAGRAM_URL,
        'tiktok_url': Config.TIKTOK_URL,
        'current_year': datetime.now().year,
        'nav_pending_orders': pending,
    }


# ==================== ROUTES ====================

# --- STOREFRONT ---
@app.route('/')
def index():
    category = request.args.get('category', '').strip() or ALL_CATEGORIES
    sort_by = request.args.get('sort', 'default').strip()
    if sort_by not in SORT_OPTIONS:
        sort_by = 'default'

    db_error = None
    try:
        products = store.list_products()
    except PyMongoError as e:
        app.logger.error('Catalog load failed: %s', e)
        products = []
        db_error = DB_ERROR_MESSAGE

    return render_template('index.html',
                           products=filter_and_sort(products, category, sort_by),
                           categories=catalog_categories(products),
                           category_filter=category,
                           sort_by=sort_by,
                           sort_options=SORT_OPTIONS,
                           db_error=db_error)


@app.route('/api/products')
def api_products():
    category = request.args.get('category', '').strip() or ALL_CATEGORIES
    sort_by = request.args.get('sort', 'default').strip()
    try:
        products = store.list_products()
    except PyMongoError as e:
        app.logger.error('Catalog load failed: %s', e)
        return jsonify({'success': False, 'error': DB_ERROR_MESSAGE}), 503

    return jsonify({
        'success': True,
        'categories': catalog_categories(products),
        'products': [product_to_json(p) for p in filter_and_sort(products, category, sort_by)]
    })


@app.route('/api/stream/products')
def stream_products():
    return Response(stream_with_context(stream_snapshots(store.listen_to_products, product_to_json)),
                    mimetype='text/event-stream',
                    headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})


@app.route('/api/stream/orders')
@admin_required
def stream_orders():
    return Response(stream_with_context(stream_snapshots(store.listen_to_orders, order_to_json)),
                    mimetype='text/event-stream',
                    headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})


# --- CHECKOUT ---
@app.route('/checkout/<product_id>', methods=['GET', 'POST'])
def checkout(product_id):
    product = load_product_or_404(product_id)
    form = {'name': '', 'phone': '', 'wilaya': Wilaya.ALGER.value, 'baladiya': ''}

    if request.method == 'GET':
        return render_checkout(product, form)

    form = {key: request.form.get(key, '').strip() for key in form}
    try:
        wilaya = Wilaya.parse(form['wilaya'])
    except ValueError:
        wilaya = None
    if not all(form.values()) or wilaya is None:
        flash(CHECKOUT_MISSING_FIELDS, 'error')
        return render_checkout(product, form, 400)

    order = Order.for_product(product, form['name'], form['phone'], wilaya, form['baladiya'])
    try:
        store.add_order(order)
    except PyMongoError as e:
        app.logger.error('Order persistence failed for product %s: %s', product.id, e)
        flash(CHECKOUT_FAILED, 'error')
        return render_checkout(product, form, 500)

    ok, message = send_order_to_telegram(order)
    if ok:
        try:
            store.mark_order_notified(order.id, True)
        except PyMongoError as e:
            app.logger.warning('Could not flag order %s as notified: %s', order.id, e)
    else:
        app.logger.warning('Order %s stored but not forwarded: %s', order.id, message)

    session['last_order_id'] = order.id
    return redirect(url_for('order_success', order_id=order.id))


@app.route('/order-success/<order_id>')
def order_success(order_id):
    if session.get('last_order_id') != order_id:
        return redirect(url_for('index'))

    try:
        order = store.get_order(order_id)
    except PyMongoError as e:
        app.logger.error('Order %s lookup failed: %s', order_id, e)
        flash(DB_ERROR_MESSAGE, 'error')
        return redirect(url_for('index'))
    if not order:
        return redirect(url_for('index'))
    return render_template('order_success.html', order=order)


# --- ADMIN AUTH ---
@app.route('/admin/login', methods=['GET', 'POST'])
def admin_login():
    if request.method == 'POST':
        password = request.form.get('password', '')
        if password and check_password_hash(ADMIN_PASSWORD_HASH, password):
            session.permanent = True
            session['is_admin'] = True
            app.logger.info('Admin login from %s', request.remote_addr)
            return redirect(safe_next_url(request.args.get('next')))
        app.logger.warning('Rejected admin password from %s', request.remote_addr)
        return render_template('admin/login.html', pass_error=True), 401

    if session.get('is_admin'):
        return redirect(url_for('admin_dashboard'))
    return render_template('admin/login.html', pass_error=False)


@app.route('/admin/logout')
def admin_logout():
    session.pop('is_admin', None)
    flash('تم تسجيل الخروج', 'success')
    return redirect(url_for('index'))


# --- STATS ---
@app.route('/admin')
@app.route('/admin/dashboard')
@admin_required
def admin_dashboard():
    products, orders = load_admin_snapshot()
    stats = dashboard_stats(orders, products)
    return render_template('admin/dashboard.html', stats=stats, active_tab='stats')


@app.route('/admin/api/stats')
@admin_required
def admin_api_stats():
    """API endpoint for dashboard statistics (AJAX)"""
    try:
        stats = dashboard_stats(store.list_orders(), store.list_products())
    except PyMongoError as e:
        return jsonify({'success': False, 'error': str(e)}), 503
    return jsonify({'success': True, **stats})


# --- AI INSIGHTS ---
@app.route('/admin/insights', methods=['GET', 'POST'])
@admin_required
def admin_insights():
    if request.method == 'POST':
        generate_insight()
        return redirect(url_for('admin_insights'))

    try:
        report = store.latest_insight()
    except PyMongoError as e:
        app.logger.error('Could not load insight report: %s', e)
        report = None
    if report is None:
        report = generate_insight()
    return render_template('admin/insights.html', report=report, active_tab='ai')


# --- PRODUCTS ---
@app.route('/admin/products')
@admin_required
def admin_products():
    products, _ = load_admin_snapshot()
    return render_template('admin/products.html', products=products, active_tab='products')


@app.route('/admin/products/new', methods=['GET', 'POST'])
@admin_required
def admin_add_product():
    if request.method == 'GET':
        return render_product_form(None, {'category': 'Classic'})

    try:
        product = Product.from_form(request.form)
    except ValueError as e:
        flash(str(e), 'error')
        return render_product_form(None, request.form, 400)

    try:
        store.add_product(product)
    except PyMongoError as e:
        app.logger.error('Product save failed: %s', e)
        flash(SAVE_FAILED, 'error')
        return render_product_form(None, request.form, 500)

    flash('تم نشر الموديل بنجاح', 'success')
    return redirect(url_for('admin_products'))


@app.route('/admin/products/<product_id>/edit', methods=['GET', 'POST'])
@admin_required
def admin_edit_product(product_id):
    try:
        product = store.get_product(product_id)
    except PyMongoError as e:
        app.logger.error('Product %s lookup failed: %s', product_id, e)
        flash(DB_ERROR_MESSAGE, 'error')
        return redirect(url_for('admin_products'))
    if not product:
        flash('المنتج غير موجود', 'error')
        return redirect(url_for('admin_products'))

    if request.method == 'GET':
        return render_product_form(product, asdict(product))

    try:
        updated = Product.from_form(request.form)
    except ValueError as e:
        flash(str(e), 'error')
        return render_product_form(product, request.form, 400)

    fields = updated.to_document()
    fields.pop('created_at')
    try:
        found = store.update_product(product_id, fields)
    except PyMongoError as e:
        app.logger.error('Product update failed for %s: %s', product_id, e)
        flash(SAVE_FAILED, 'error')
        return render_product_form(product, request.form, 500)

    if not found:
        flash('المنتج غير موجود', 'error')
        return redirect(url_for('admin_products'))

    flash('تم تعديل الموديل بنجاح', 'success')
    return redirect(url_for('admin_products'))


@app.route('/admin/products/<product_id>/delete', methods=['POST'])
@admin_required
def admin_delete_product(product_id):
    try:
        deleted = store.delete_product(product_id)
    except PyMongoError as e:
        app.logger.error('Product delete failed for %s: %s', product_id, e)
        flash(SAVE_FAILED, 'error')
        return redirect(url_for('admin_products'))

    if deleted:
        flash('تم حذف المنتج', 'success')
    else:
        flash('المنتج غير موجود', 'error')
    return redirect(url_for('admin_products'))


# --- ORDERS ---
@app.route('/admin/orders')
@admin_required
def admin_orders():
    status_filter = request.args.get('status', 'all')
    _, orders = load_admin_snapshot()
    if status_filter != 'all':
        orders = [o for o in orders if o.status.value == status_filter]
    return render_template('admin/orders.html',
                           orders=orders,
                           statuses=list(OrderStatus),
                           status_filter=status_filter,
                           active_tab='orders')


@app.route('/admin/orders/<order_id>/status', methods=['POST'])
@admin_required
def admin_update_order_status(order_id):
    payload = request.get_json(silent=True) or request.form
    wants_json = request.is_json or request.headers.get('X-Requested-With') == 'XMLHttpRequest'
    try:
        status = OrderStatus.parse(payload.get('status'))
    except ValueError:
        return jsonify({'success': False, 'message': 'Invalid status'}), 400

    try:
        updated = store.update_order_status(order_id, status)
    except PyMongoError as e:
        app.logger.error('Status update failed for order %s: %s', order_id, e)
        if wants_json:
            return jsonify({'success': False, 'message': DB_ERROR_MESSAGE}), 503
        flash(SAVE_FAILED, 'error')
        return redirect(url_for('admin_orders'))

    if not updated:
        if wants_json:
            return jsonify({'success': False, 'message': 'Order not found'}), 404
        flash('الطلب غير موجود', 'error')
        return redirect(url_for('admin_orders'))

    app.logger.info('Order %s moved to %s', order_id, status.name)
    if wants_json:
        return jsonify({'success': True, 'status': status.value})
    flash('تم تحديث حالة الطلب', 'success')
    return redirect(url_for('admin_orders'))


@app.route('/admin/orders/<order_id>/delete', methods=['POST'])
@admin_required
def admin_delete_order(order_id):
    try:
        deleted = store.delete_order(order_id)
    except PyMongoError as e:
        app.logger.error('Order delete failed for %s: %s', order_id, e)
        flash(SAVE_FAILED, 'error')
        return redirect(url_for('admin_orders'))

    if deleted:
        flash('تم حذف الطلب', 'success')
    else:
        flash('الطلب غير موجود', 'error')
    return redirect(url_for('admin_orders'))


# --- BULK UPLOAD ---
@app.route('/admin/bulk-upload', methods=['GET', 'POST'])
@admin_required
def admin_bulk_upload():
    if request.method == 'GET':
        return render_template('admin/bulk_upload.html',
                               required_columns=REQUIRED_COLUMNS,
                               optional_columns=OPTIONAL_COLUMNS,
                               active_tab='products')

    upload = request.files.get('file')
    if not upload or not upload.filename:
        flash('يرجى اختيار ملف', 'error')
        return redirect(url_for('admin_bulk_upload'))

    try:
        result = ProductImporter(store).run(upload)
    except Exception as e:
        app.logger.exception('Bulk upload failed')
        flash(f'تعذر قراءة الملف: {e}', 'error')
        return redirect(url_for('admin_bulk_upload'))

    if not result['ok']:
        flash(result['errors'][0], 'error')
        return redirect(url_for('admin_bulk_upload'))

    flash(f'اكتمل الاستيراد: {result["created"]} جديد، {result["updated"]} محدث، {result["skipped"]} متجاهل.',
          'success')
    if result['errors']:
        flash('بعض الأسطر تم تجاهلها. أول خطأ: ' + result['errors'][0], 'warning')
    return redirect(url_for('admin_products'))


# --- SERVER START BLOCK ---
if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000, debug=True, threaded=True)
